#!/usr/bin/env python3
"""
cloudlink command-line runner

Run this script to issue requests against a configured provider.

Usage:
    python run.py ls                          # List buckets
    python run.py ls my-bucket                # List objects in a bucket
    python run.py head my-bucket foo.txt      # Object metadata
    python run.py get my-bucket foo.txt -o foo.txt --if-none-match '"abc"'
    python run.py -p linode zones             # DNS zones of a provider
    python run.py images                      # Machine images
    python run.py -c custom.json -v ls        # Custom config, verbose logging
"""

import sys
from cloudlink.cli import main

if __name__ == "__main__":
    sys.exit(main())
