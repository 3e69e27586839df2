import sys
import os

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from chatapp.database.session import create_engine, initialize_db

async def create_tables():
    """
    Create the entities table used by the datastore.
    """
    engine = create_engine()
    await initialize_db(engine)
    await engine.dispose()

import asyncio
asyncio.run(create_tables())
