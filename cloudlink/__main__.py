import sys

from cloudlink.cli import main

sys.exit(main())
