import sys

from confchain.cli import main

sys.exit(main())
