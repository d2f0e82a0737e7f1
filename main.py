
import asyncio
import uvicorn
import logging

from fast_api import api
from config import PORT


async def main():
    """
    Starts the FastAPI server using Uvicorn.
    """
    config = uvicorn.Config(api, host="0.0.0.0", port=PORT, loop="asyncio", log_level="warning")
    server = uvicorn.Server(config)
    logging.info(f"Audio journal API listening on port {PORT}")
    await server.serve()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Server stopped.")
