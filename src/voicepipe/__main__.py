"""Allow running as: python -m voicepipe"""

from .app import service_main

if __name__ == "__main__":
    service_main()
