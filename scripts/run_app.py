import os
import socket
import sys
import threading
import time
import webbrowser
from pathlib import Path

import uvicorn

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from main import app  # noqa: E402


def wait_for_server(host, port, timeout=10):
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=0.5):
                return True
        except OSError:
            time.sleep(0.2)
    return False


def open_docs(host, port):
    if wait_for_server(host, port):
        webbrowser.open(f"http://{host}:{port}/docs")


def main():
    host = os.environ.get("HOST", "127.0.0.1")
    port = int(os.environ.get("PORT", "8000"))

    if "--open" in sys.argv:
        threading.Thread(target=open_docs, args=(host, port), daemon=True).start()

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
