import sys

from spikeimport.cli import main

sys.exit(main())
