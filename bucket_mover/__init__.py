"""
Bucket Mover

Keeps an AWS S3 bucket and a Google Cloud Storage bucket synchronized by
moving every object from the fuller bucket into the other one.

Author: Bucket Mover Project
License: MIT
"""

__version__ = "0.1.0"
