import sys

from cnimulti.cli import main

sys.exit(main())
