import sys

from tradeup.cli import main

sys.exit(main())
