import sys

from emis_concept_map.run_concept_map import main

if __name__ == "__main__":
    sys.exit(main())
