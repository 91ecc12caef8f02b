import sys
import os
import logging
import uvicorn

if sys.platform == "win32":
    import asyncio
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

if __name__ == "__main__":
    host = os.environ.get("LCU_CORE_HOST", "localhost")
    port = int(os.environ.get("LCU_CORE_PORT", "8765"))
    log_level = os.environ.get("LCU_CORE_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "lcu_core.server:app",
        host=host,
        port=port,
        log_level=log_level.lower(),
    )
