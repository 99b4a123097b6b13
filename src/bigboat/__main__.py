import sys

from bigboat.cli.__main__ import main

sys.exit(main())
