from __future__ import annotations
import logging
from api.app import FastAPIManager


server_manager = FastAPIManager()
app = server_manager.get_app()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    server_manager.start_server()
