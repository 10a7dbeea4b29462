"""Initial data: tables and the system template scripts."""

import logging

from sqlmodel import Session, select

from rssflow.core.db import engine, init_db
from rssflow.models import Script

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

KEYWORD_FILTER_TEMPLATE = '''\
# Keyword filter: keep articles mentioning any keyword, drop the rest.
KEYWORDS = ["python", "programming", "rss"]


def process_article(article, raw_item=None):
    text = (article["title"] + " " + article["description"]).lower()
    matched = any(k in text for k in KEYWORDS)
    if not matched and raw_item:
        categories = raw_item.get("categories") or []
        matched = any(k in str(c).lower() for c in categories for k in KEYWORDS)
    if matched:
        return {"action": "keep"}
    return {"action": "filter", "reason": "no keyword matched"}
'''

WEBHOOK_TEMPLATE = '''\
# Webhook push: send every article to an external endpoint.
WEBHOOK_URL = "https://your-webhook-url.example.com/api/notify"


def process_article(article, raw_item=None):
    payload = {
        "title": article["title"],
        "link": article["link"],
        "description": article["description"],
        "pub_date": article["pub_date"],
        "categories": raw_item.get("categories", []) if raw_item else [],
        "author": raw_item.get("creator") if raw_item else None,
    }
    sent = webhook(WEBHOOK_URL, payload)
    if not sent["success"]:
        log.warn("webhook failed: %s", sent["error"])
    return {"action": "keep", "webhook": sent["success"]}
'''

LLM_SUMMARY_TEMPLATE = '''\
# LLM summary: replace the description with a short generated summary.
API_KEY = "your-openai-api-key"


def process_article(article, raw_item=None):
    client = llm.create_client(API_KEY)
    text = article["title"] + "\\n" + (article["content"] or article["description"])
    resp = client.chat.completions.create(
        messages=[
            {"role": "system", "content": "Summarize the article in under 100 words."},
            {"role": "user", "content": text},
        ],
        max_tokens=150,
    )
    if resp.get("success") is False:
        log.warn("summary failed: %s", resp["error"])
        return {"action": "keep"}
    summary = resp["choices"][0]["message"]["content"]
    return {"action": "keep", "article": {"description": summary}}
'''

SYSTEM_TEMPLATES = [
    {
        "name": "Keyword filter",
        "description": "Keep only articles that mention a keyword",
        "content": KEYWORD_FILTER_TEMPLATE,
    },
    {
        "name": "Webhook push",
        "description": "Push each article to an external service",
        "content": WEBHOOK_TEMPLATE,
    },
    {
        "name": "LLM summary",
        "description": "Summarize articles with an OpenAI-compatible model",
        "content": LLM_SUMMARY_TEMPLATE,
    },
]


def seed_system_templates(session: Session) -> int:
    """Insert system template scripts missing by name. Returns the number inserted."""
    existing = {
        s.name for s in session.exec(select(Script).where(Script.is_template == True)).all()  # noqa: E712
    }
    created = 0
    for template in SYSTEM_TEMPLATES:
        if template["name"] in existing:
            continue
        session.add(Script(is_template=True, **template))
        created += 1
        logger.info("Created system template: %s", template["name"])
    return created


def init() -> None:
    with Session(engine) as session:
        init_db(session)
        session.commit()
    with Session(engine) as session:
        seed_system_templates(session)
        session.commit()


def main() -> None:
    logger.info("Creating initial data")
    init()
    logger.info("Initial data created")


if __name__ == "__main__":
    main()
