import sys

from mtrip.cli import main

sys.exit(main())
