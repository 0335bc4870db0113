"""API server entry point for python -m vidagents.api"""
import uvicorn
from vidagents.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "vidagents.api.app:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )
