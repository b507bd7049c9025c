"""
FastAPI REST Endpoints
======================

HTTP access to the PlantUML renderer.

Endpoints:
- GET/POST /png, /svg, /pdf, /eps, /epstext, /txt, /base64: Render a diagram
- GET/POST /map, GET /check: Image map and syntax report
- GET /proxy: Render a remotely hosted source
- GET/POST /coder: Decode and encode source tokens
- GET/POST /metadata: Source embedded in a rendered image
- GET /ui-helper, GET /language: Editor listings
- GET /health: Health check endpoint
"""
