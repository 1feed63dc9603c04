import sys

from sixshelf.cli import main

sys.exit(main())
