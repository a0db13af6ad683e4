import sys

from epic_bot.cli import main

sys.exit(main())
