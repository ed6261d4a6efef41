"""Keyword-triggered selection of the specialist roles for a project."""

import re

BASE_ROLES = ["Backend Developer", "Frontend Developer"]
INTEGRATION_ROLE = "Chief Technology Officer"

# Keywords that are prefix patterns (match word starts, e.g. "encrypt" -> "encryption")
_PREFIX_KEYWORDS = {"encrypt", "authenticat", "authoriz", "scal", "container", "kubernet", "predict"}

# Checked in declaration order; the output keeps this order.
ROLE_TRIGGERS = [
    ("UI/UX Designer", [
        "ui", "user interface", "design", "user experience", "ux", "wireframe",
        "mockup", "layout", "accessibility",
    ]),
    ("Database Architect", [
        "database", "data", "storage", "sql", "nosql", "postgres", "postgresql",
        "mysql", "mongodb", "redis", "schema",
    ]),
    ("Security Specialist", [
        "security", "authenticat", "authoriz", "encrypt", "privacy", "login",
        "oauth", "jwt", "gdpr",
    ]),
    ("DevOps Engineer", [
        "scal", "performance", "load balancing", "cloud", "aws", "azure", "gcp",
        "container", "docker", "kubernet", "ci/cd", "deployment",
    ]),
    ("Mobile Developer", [
        "mobile", "ios", "android", "react native", "flutter", "smartphone",
    ]),
    ("QA Engineer", [
        "test", "testing", "tests", "quality", "qa", "e2e",
    ]),
    ("Machine Learning Engineer", [
        "ml", "machine learning", "ai", "artificial intelligence", "predict",
        "neural", "data science", "llm", "recommendation",
    ]),
    ("Blockchain Developer", [
        "blockchain", "crypto", "cryptocurrency", "smart contract", "web3",
        "nft", "ethereum",
    ]),
]

ROLE_EXPERTISE = {
    "Backend Developer": "server-side architecture, APIs and business logic",
    "Frontend Developer": "client-side architecture, components and state management",
    "UI/UX Designer": "interaction design, visual systems and usability",
    "Database Architect": "data modelling, storage engines and query design",
    "Security Specialist": "authentication, authorization and data protection",
    "DevOps Engineer": "infrastructure, deployment pipelines and scalability",
    "Mobile Developer": "native and cross-platform mobile applications",
    "QA Engineer": "test strategy, automation and quality gates",
    "Machine Learning Engineer": "model training, inference and data pipelines",
    "Blockchain Developer": "smart contracts, wallets and on-chain integration",
    INTEGRATION_ROLE: "integrating specialist designs into one coherent architecture",
}

ALL_ROLES = BASE_ROLES + [role for role, _ in ROLE_TRIGGERS] + [INTEGRATION_ROLE]


def _keyword_pattern(keyword):
    if keyword in _PREFIX_KEYWORDS:
        return r"\b" + re.escape(keyword)
    return r"\b" + re.escape(keyword) + r"\b"


_COMPILED_TRIGGERS = [
    (role, [re.compile(_keyword_pattern(k)) for k in keywords])
    for role, keywords in ROLE_TRIGGERS
]


def select_roles(requirements):
    """Return the ordered, de-duplicated role list for the given requirements.

    Base roles first, then triggered roles in table order, then the
    integration role. Never fails; an empty list still yields the base roles.
    """
    text = "\n".join(r for r in requirements if isinstance(r, str)).lower()

    roles = list(BASE_ROLES)
    for role, patterns in _COMPILED_TRIGGERS:
        if role in roles:
            continue
        if any(p.search(text) for p in patterns):
            roles.append(role)
    roles.append(INTEGRATION_ROLE)
    return roles


def specialist_roles(roles):
    """Roles that produce a Stage 1 vision (everything but the integration role)."""
    return [r for r in roles if r != INTEGRATION_ROLE]
