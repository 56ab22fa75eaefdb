import sys

from dicomancer.cli import main

sys.exit(main())
