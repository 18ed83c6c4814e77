#!/usr/bin/env python3
"""
Seed a demo survey with visibility and navigation rules.

Usage:
    # Seed into the database configured in .env
    python seed_demo.py

    # Override MongoDB connection (optional)
    python seed_demo.py --mongo-uri "mongodb://..." --db-name "mydb"

    # Replace an existing demo form
    python seed_demo.py --form-id customer_feedback --force
"""
import argparse
import asyncio
import os
import sys

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient

from pollify.database import MongoStore
from pollify.services import upsert_form
from pollify.schemas import FormIn

# Load environment variables
load_dotenv()


def get_mongo_config(mongo_uri=None, db_name=None):
    """Get MongoDB configuration from args or environment."""
    if not mongo_uri:
        mongo_uri = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    if not db_name:
        db_name = os.getenv("DB_NAME", "pollify")
    return mongo_uri, db_name


def demo_form(form_id):
    """Customer feedback survey: unhappy customers get a follow-up, 'No' to contact ends early."""
    return FormIn.model_validate({
        "id": form_id,
        "title": "Customer Feedback",
        "description": "Tell us how we did.",
        "isPublic": True,
        "allowMultipleResponses": False,
        "questions": [
            {
                "id": "satisfied",
                "title": "Were you satisfied with your visit?",
                "type": "SINGLE_CHOICE",
                "required": True,
                "order": 1,
                "choices": [
                    {"id": "satisfied_yes", "label": "Yes", "order": 1},
                    {"id": "satisfied_no", "label": "No", "order": 2},
                ],
            },
            {
                "id": "what_went_wrong",
                "title": "What went wrong?",
                "type": "TEXT",
                "required": False,
                "order": 2,
            },
            {
                "id": "score",
                "title": "How likely are you to recommend us?",
                "type": "RATING",
                "required": True,
                "order": 3,
                "minRating": 1,
                "maxRating": 5,
                "ratingLabels": ["Not at all", "Unlikely", "Maybe", "Likely", "Certainly"],
            },
            {
                "id": "contact",
                "title": "May we contact you about your answers?",
                "type": "SINGLE_CHOICE",
                "required": True,
                "order": 4,
                "choices": [
                    {"id": "contact_yes", "label": "Yes", "order": 1},
                    {"id": "contact_no", "label": "No", "order": 2},
                ],
            },
            {
                "id": "email",
                "title": "Your email address",
                "type": "TEXT",
                "required": True,
                "order": 5,
            },
        ],
        "visibilityRules": [
            {
                "id": "show_what_went_wrong",
                "dependsOnQuestionId": "satisfied",
                "operator": "EQUALS",
                "value": "No",
                "subjectQuestionId": "what_went_wrong",
                "showWhenMatched": True,
                "order": 0,
            },
        ],
        "navigationRules": [
            {
                "id": "end_without_contact",
                "dependsOnQuestionId": "contact",
                "operator": "EQUALS",
                "value": "No",
                "fromQuestionId": "contact",
                "action": "END_SURVEY",
                "order": 0,
            },
        ],
    })


async def seed(mongo_uri, db_name, form_id, force):
    client = AsyncIOMotorClient(mongo_uri, tz_aware=True)
    try:
        store = MongoStore(client[db_name])
        await store.ensure_indexes()
        if await store.get_form(form_id) is not None and not force:
            print(f"Form '{form_id}' already exists; use --force to replace it.")
            return False
        form = await upsert_form(store, demo_form(form_id))
        print(f"✓ Seeded form '{form.id}' with {len(form.questions)} questions into '{db_name}'")
        return True
    finally:
        client.close()


def main():
    parser = argparse.ArgumentParser(description="Seed a demo survey form")
    parser.add_argument("--mongo-uri", help="MongoDB connection URI (overrides MONGO_URI)")
    parser.add_argument("--db-name", help="Database name (overrides DB_NAME)")
    parser.add_argument("--form-id", default="customer_feedback", help="Id of the demo form")
    parser.add_argument("--force", action="store_true", help="Replace the form if it already exists")
    args = parser.parse_args()

    mongo_uri, db_name = get_mongo_config(args.mongo_uri, args.db_name)
    ok = asyncio.run(seed(mongo_uri, db_name, args.form_id, args.force))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
