"""
API package: FastAPI routers for the chat relay.

- chat: POST /chat and POST /reset
- health: GET / and GET /health
"""
