#!/usr/bin/env python3
"""
s3cli client tool for S3 Bucket/Object operation

Usage:
    python run.py listBucket                        # List buckets
    python run.py -e http://127.0.0.1:9000 ls bkt   # List objects in a bucket
    python run.py up bkt ./file.bin -k data/file    # Upload a file
    python run.py presign bkt data/file -E 1h -2    # Presign with the v2 signature
    python run.py --sign-v2 head bkt data/file      # Send a v2-signed request
"""

import sys
from s3cli.cli import main

if __name__ == "__main__":
    sys.exit(main())
