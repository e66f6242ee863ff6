"""Run refresh-token garbage collection as a standalone process."""

import logging
import time

from app.services.token_sweeper import token_sweeper


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    token_sweeper.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        token_sweeper.stop()


if __name__ == "__main__":
    main()
