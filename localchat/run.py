"""Backend launcher that sets the Windows event loop policy before uvicorn starts."""
import asyncio
import sys

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

import uvicorn


def main() -> None:
    uvicorn.run("localchat.main:app", host="127.0.0.1", port=8765)


if __name__ == "__main__":
    main()
