"""PySide6 entrypoint: launches the Board Image Tools window from board_tools.main."""

import sys

from board_tools.main import main

if __name__ == "__main__":
    sys.exit(main())
