import sys

from shorts.cli import main

sys.exit(main())
