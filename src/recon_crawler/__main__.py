"""Allow ``python -m recon_crawler``."""

import sys

from recon_crawler.cli import main


if __name__ == "__main__":
    sys.exit(main())
