"""
STACKCTL - Certificates - Proxy Templates

Rendu des configurations nginx (challenge et production).

Jinja2 n'interprète que {{ }} et {% %}: les $variables nginx passent telles
quelles.
"""

from pathlib import Path
from typing import Optional, Sequence, Union

from jinja2 import Environment, StrictUndefined

from .interfaces import ProxyConfiguration, ProxyMode

CHALLENGE_TEMPLATE = """\
# stackctl: challenge mode
server {
    listen 80 default_server;
    listen [::]:80 default_server;
    server_name {{ server_names }};

    location /.well-known/acme-challenge/ {
        root {{ challenge_root }};
        try_files $uri =404;
        allow all;
    }

    location / {
        return 301 https://$host$request_uri;
    }
}
"""

PRODUCTION_TEMPLATE = """\
# stackctl: production mode
server {
    listen 80;
    listen [::]:80;
    server_name {{ server_names }};

    location /.well-known/acme-challenge/ {
        root {{ challenge_root }};
        try_files $uri =404;
    }

    location / {
        return 301 https://$host$request_uri;
    }
}

server {
    listen 443 ssl;
    listen [::]:443 ssl;
    http2 on;
    server_name {{ server_names }};

    ssl_certificate {{ fullchain }};
    ssl_certificate_key {{ privkey }};
    ssl_protocols TLSv1.2 TLSv1.3;
    ssl_prefer_server_ciphers off;
    ssl_session_cache shared:SSL:10m;
    ssl_session_timeout 1d;

    add_header Strict-Transport-Security "max-age=63072000; includeSubDomains" always;

    location /health {
        access_log off;
        return 200 "healthy\\n";
    }

    location / {
        proxy_pass {{ upstream }};
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;
    }
}
"""


class ProxyConfigRenderer:
    """Rend les deux modes du proxy pour un jeu de domaines."""

    def __init__(
        self,
        domains: Sequence[str],
        challenge_root: Union[str, Path],
        upstream: str = "http://web:3000",
        challenge_template: Optional[str] = None,
        production_template: Optional[str] = None,
    ):
        if not domains:
            raise ValueError("at least one domain is required")
        self._domains = list(domains)
        self._challenge_root = str(challenge_root)
        self._upstream = upstream
        # Variable inconnue dans un template personnalisé: UndefinedError au rendu
        env = Environment(keep_trailing_newline=True, undefined=StrictUndefined)
        self._challenge = env.from_string(challenge_template or CHALLENGE_TEMPLATE)
        self._production = env.from_string(production_template or PRODUCTION_TEMPLATE)

    def challenge(self) -> ProxyConfiguration:
        content = self._challenge.render(
            server_names=" ".join(self._domains),
            challenge_root=self._challenge_root,
        )
        return ProxyConfiguration(mode=ProxyMode.CHALLENGE, content=content)

    def production(self, fullchain: Path, privkey: Path) -> ProxyConfiguration:
        content = self._production.render(
            server_names=" ".join(self._domains),
            challenge_root=self._challenge_root,
            fullchain=str(fullchain),
            privkey=str(privkey),
            upstream=self._upstream,
        )
        return ProxyConfiguration(mode=ProxyMode.PRODUCTION, content=content)
