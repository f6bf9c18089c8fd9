#!/usr/bin/env python
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger


def main() -> None:
    # .env 需要在读取配置之前加载
    load_dotenv(Path.cwd() / ".env")
    from src.certbind.cli import cli

    logger.debug("certbind 启动")
    cli(prog_name="certbind")


if __name__ == "__main__":
    main()
