import os
import sys

import pytest_asyncio

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import AsyncDatabase


@pytest_asyncio.fixture
async def db(tmp_path):
    database = AsyncDatabase(str(tmp_path / "workout.db"))
    await database.create_tables()
    yield database
    await database.close()
