# MIT License
# python -m blfcap SOURCE.blf DEST.pcapng
from blfcap.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
