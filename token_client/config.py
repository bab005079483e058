"""
Token client configuration from the environment.
"""
import os

# Token server base URL
TOKEN_SERVER_URL = os.environ.get("TOKEN_SERVER_URL", "http://127.0.0.1:9000").rstrip("/")

# Region whose STS endpoint verifies our signature
AWS_REGION = os.environ.get("AWS_REGION", "us-east-1")

TOKEN_REQUEST_TIMEOUT_SECONDS = float(os.environ.get("TOKEN_REQUEST_TIMEOUT_SECONDS", "10"))
