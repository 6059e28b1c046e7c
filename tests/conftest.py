import os

# The HTTP tests run against the in-process store; live Redis tests opt in
# through REDIS_URL.
os.environ.setdefault("STORE_BACKEND", "memory")
