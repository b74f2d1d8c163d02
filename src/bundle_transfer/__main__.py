import sys

from bundle_transfer.cli import main

sys.exit(main())
