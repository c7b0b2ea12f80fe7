"""
Gateway API Endpoints

This package contains the FastAPI routers for the gateway:
- challenge: Admission challenge issuance (GET /challenge)
- allocate: Puzzle-gated index allocation (POST /allocate)
- collection: Live collection stats (GET /collection)

Routers read their collaborators (issuer, gate, assembler, config) from
``request.app.state``; see ``mint_gateway.main.create_app``.
"""
