import sys

from gpuhash.cli import main

sys.exit(main())
