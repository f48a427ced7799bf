import sys

from pdv_sentinel.cli import main

sys.exit(main())
