"""
Media synthesis engine for branded marketing assets.

Modules:
- core: batch manager and conversation router
- assets: asset lifecycle, image ingestion and export
- render: deterministic compositor
- generator: adapter for the generative-AI collaborator
- messaging: spec negotiation, preset suggestions and design briefs
- refine: edit instruction handling for a single rendered asset
- products: output-format catalog
- spec: design specification store
"""
