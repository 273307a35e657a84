"""
Run LLM Gateway - Direct launch script
"""
import sys
import logging

import uvicorn

from config.settings import get_settings

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)

from gateway.api import create_app

app = create_app(settings)

if __name__ == "__main__":
    print("=" * 60)
    print("  LLM Gateway - Starting...")
    print("=" * 60)
    print(f"""
Listening on http://{settings.server.host}:{settings.server.port}
Default model: {settings.llm.default_model}
Document store: {settings.vector_store.provider}

Press Ctrl+C to stop the server.
""")

    uvicorn.run(app, host=settings.server.host, port=settings.server.port, log_level=settings.log_level.lower())
