# Kubernetes-related RSS feeds registered on first start
DEFAULT_SOURCES = [
    {"name": "Kubernetes Blog", "url": "https://kubernetes.io/feed.xml"},
    {"name": "CNCF Blog", "url": "https://www.cncf.io/feed/"},
    {"name": "Docker Blog", "url": "https://www.docker.com/blog/feed/"},
    {"name": "Red Hat OpenShift Blog", "url": "https://www.redhat.com/en/rss/blog/channel/red-hat-openshift"},
    {"name": "Platform9 Blog", "url": "https://platform9.com/blog/feed/"},
    {"name": "Rancher Blog", "url": "https://www.rancher.com/blog/rss.xml"},
    {"name": "Aqua Security Blog", "url": "https://blog.aquasec.com/rss.xml"},
    {"name": "Sysdig Blog", "url": "https://sysdig.com/blog/feed/"},
]
