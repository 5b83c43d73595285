import re

# Kubernetes and adjacent cloud-native vocabulary; any substring hit counts.
KUBERNETES_PATTERN = re.compile(
    r"kubernetes|k8s|container|docker|pod|deployment|helm|kubectl|cluster"
    r"|microservice|devops|cloud.?native|cncf",
    re.IGNORECASE,
)


def is_relevant(title: str, content: str) -> bool:
    """Return True when the title or body mentions the Kubernetes ecosystem."""
    return KUBERNETES_PATTERN.search(f"{title or ''} {content or ''}") is not None
