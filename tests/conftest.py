import json
import os
import tempfile

import pytest

# app.py creates its output directory at import time; keep it out of the checkout.
os.environ.setdefault("GENERATED_SITES_DIR", tempfile.mkdtemp(prefix="generated-sites-"))
os.environ.setdefault("FRONTEND_URL", "https://frontend.example.com/")

import ai_client  # noqa: E402

MOVIES = [
    {"id": "tt01", "Title": "Fast Lane", "Year": "2010", "Genre": "Action, Thriller", "imdbRating": "7.1"},
    {"id": "tt02", "Title": "Quiet Rooms", "Year": "2012", "Genre": "Drama", "imdbRating": "8.0"},
    {"id": "tt03", "Title": "Laugh Track", "Year": "2010", "Genre": "Comedy", "imdbRating": "6.4"},
    {"id": "tt04", "Title": "Iron Storm", "Year": "2015", "Genre": "Action", "imdbRating": "6.9"},
]

COMPANIES = [
    {"id": "c1", "name": "Acme Labs", "industry": "Technology", "location": "Pune, India", "mission": "Build tools"},
    {"id": "c2", "name": "Green Roots", "industry": "Agriculture", "location": "Delhi, India", "mission": "Feed people"},
    {"id": "c3", "name": "Blue Harbor", "industry": "Technology", "location": "London, UK", "mission": "Ship software"},
]

PRODUCTS = [
    {"id": "p1", "name": "LedgerPro", "category": "Software", "personas": ["Business Owners", "Accountants"],
     "useCases": ["invoicing"], "trialDays": 14},
    {"id": "p2", "name": "StudyBuddy", "category": "Mobile App", "personas": ["Students"],
     "useCases": ["notes"], "trialDays": 7},
    {"id": "p3", "name": "TeamDesk", "category": "Software", "personas": ["IT Managers"],
     "useCases": ["business helpdesk"], "trialDays": 30},
]


@pytest.fixture(autouse=True)
def fresh_clients():
    ai_client.clear_client_cache()
    yield
    ai_client.clear_client_cache()


@pytest.fixture
def data_root(tmp_path):
    root = tmp_path / "data"
    root.mkdir()
    for name, items in (("movies", MOVIES), ("companies", COMPANIES), ("products", PRODUCTS)):
        (root / f"{name}.json").write_text(json.dumps(items), encoding="utf-8")
    return str(root)
