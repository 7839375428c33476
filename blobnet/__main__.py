import sys

from blobnet.tutorial import main

if __name__ == "__main__":
    sys.exit(main())
