import sys

from statportal.cli import main

sys.exit(main())
