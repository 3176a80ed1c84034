import sys

from cbuild.cli import main

sys.exit(main())
