"""Process-wide directory store and ranker used by the HTTP app.

Kept apart from the store and ranker modules so tools that build their own
store (the CLI) can import those without opening the default database.
"""

from gharsewa.services.directory_store import build_directory_store
from gharsewa.services.proximity import ProximityRanker

directory_store = build_directory_store()
proximity_ranker = ProximityRanker(store=directory_store)
