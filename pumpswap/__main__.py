"""
Allow running PUMP SWAP as a module: python -m pumpswap
"""

import asyncio
from pumpswap.bot import main


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
