import os
import sys

import uvicorn


def main() -> None:
    port = int(sys.argv[1] if len(sys.argv) > 1 else os.getenv("PORT", "6001"))
    uvicorn.run("dojo.main:app", host=os.getenv("HOST", "0.0.0.0"), port=port)


if __name__ == "__main__":
    main()
