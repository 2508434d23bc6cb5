#!/usr/bin/env python
"""
Seed Initial Prompts

Creates a starter set of prompts, each with an active version 1.

Usage:
    DATABASE_URL=postgresql://... python scripts/seed_prompts.py

Idempotent: skips prompts whose name already exists among active prompts.
"""

from prompt_manager import database
from prompt_manager.errors import PromptNotFound
from prompt_manager.services.prompt_service import PromptService

PROMPTS_TO_SEED = [
    {
        'name': 'welcome_email',
        'description': 'Greeting sent after sign-up',
        'tags': ['email', 'onboarding'],
        'body': 'Hello {{name}}, welcome to {{product}}!',
        'variables_schema': {'name': 'string', 'product': 'string'},
        'metadata': {'channel': 'email'},
    },
    {
        'name': 'ticket_summary',
        'description': 'Summarizes a support ticket for the triage queue',
        'tags': ['support'],
        'body': (
            'Summarize the following support ticket in two sentences.\n'
            'Subject: {{subject}}\n'
            'Body: {{body}}'
        ),
        'variables_schema': {'subject': 'string', 'body': 'string'},
        'metadata': {'max_tokens': 200},
    },
    {
        'name': 'intent_classifier',
        'description': 'Classifies an inbound message into a fixed intent set',
        'tags': ['classification'],
        'body': (
            'Classify the message into one of: question, complaint, feedback, spam.\n'
            'Message: {{message}}\n'
            'Answer with JSON: {"intent": "...", "confidence": 0.0-1.0}'
        ),
        'variables_schema': {'message': 'string'},
        'metadata': {'temperature': 0.0},
    },
]


def seed_initial_prompts():
    """
    Seed database with starter prompts.

    Each prompt gets version 1 (published, active).
    """
    database.init_db()
    if database.SessionLocal is None:
        raise SystemExit("DATABASE_URL not configured")

    db = database.SessionLocal()

    try:
        service = PromptService(db)
        seeded_count = 0
        skipped_count = 0

        for prompt_data in PROMPTS_TO_SEED:
            try:
                service.get_prompt_by_name(prompt_data['name'])
                print(f"Skipping {prompt_data['name']} - already exists")
                skipped_count += 1
                continue
            except PromptNotFound:
                pass

            prompt = service.create_prompt(
                name=prompt_data['name'],
                description=prompt_data['description'],
                tags=prompt_data['tags'],
                created_by='seed_script',
            )
            service.create_prompt_version(
                prompt.id,
                body=prompt_data['body'],
                variables_schema=prompt_data['variables_schema'],
                metadata=prompt_data['metadata'],
                status='published',
                created_by='seed_script',
                activate=True,
            )
            print(f"Seeded {prompt_data['name']} v1 (active)")
            seeded_count += 1

        print(f"\n{'='*60}")
        print("Prompt seeding complete!")
        print(f"  Seeded: {seeded_count} prompts")
        print(f"  Skipped: {skipped_count} prompts (already exist)")
        print(f"{'='*60}")

    finally:
        db.close()


if __name__ == '__main__':
    seed_initial_prompts()
