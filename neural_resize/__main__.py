import sys

from neural_resize.cli import main

sys.exit(main())
