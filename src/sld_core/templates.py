"""
Typed nginx configuration templates.

Templates use ``{{NAME}}`` placeholders. Rendering checks that every
placeholder gets a value, that no unknown value is passed, and that
single-line values carry no newline or double quote, so a stray path or
domain cannot break out of its directive.
"""

import re
from dataclasses import dataclass, field

from .exceptions import TemplateError

PLACEHOLDER_PATTERN = re.compile(r"\{\{([A-Z][A-Z0-9_]*)\}\}")

SECTION_ADDONS = "# --- Add-on Blocks ---"
SECTION_ISOLATED = "# --- Isolated Sites ---"


@dataclass(frozen=True)
class ConfigTemplate:
    """A named template with validated placeholders."""

    name: str
    text: str
    multiline: frozenset = field(default_factory=frozenset)

    @property
    def placeholders(self) -> frozenset:
        return frozenset(PLACEHOLDER_PATTERN.findall(self.text))

    def render(self, **values: str) -> str:
        """
        Substitute every placeholder.

        Raises:
            TemplateError: On missing, unknown or malformed values
        """
        expected = self.placeholders
        missing = sorted(expected - values.keys())
        unknown = sorted(values.keys() - expected)
        if missing or unknown:
            raise TemplateError(
                code="placeholder_mismatch",
                message=f"Template '{self.name}' placeholder mismatch",
                details={"missing": missing, "unknown": unknown},
            )

        for key, value in values.items():
            if not isinstance(value, str):
                raise TemplateError(
                    code="invalid_value",
                    message=f"Value for {key} in '{self.name}' must be a string",
                    details={"placeholder": key, "type": type(value).__name__},
                )
            if key not in self.multiline and ("\n" in value or '"' in value):
                raise TemplateError(
                    code="invalid_value",
                    message=f"Value for {key} in '{self.name}' must be a single unquoted line",
                    details={"placeholder": key, "value": value},
                )

        return PLACEHOLDER_PATTERN.sub(lambda m: values[m.group(1)], self.text)


def listen_lines(port: str, tls: bool = False) -> str:
    """IPv4 and IPv6 listen directives for a server block."""
    if tls:
        return "    listen 443 ssl http2;\n    listen [::]:443 ssl http2;"
    return f"    listen {port};\n    listen [::]:{port};"


_LISTEN = frozenset({"LISTEN_HTTP", "LISTEN_HTTPS"})

_ROUTER_LOCATIONS = """\
    root /;
    charset utf-8;
    client_max_body_size 128M;

    location / {
        rewrite ^ "{{RUNTIME_PATH}}/router.php" last;
    }

    location ~ [^/]\\.php(/|$) {
        fastcgi_split_path_info ^(.+\\.php)(/.+)$;
        fastcgi_pass unix:{{PHP_SOCKET}};
        fastcgi_index "{{RUNTIME_PATH}}/router.php";
        include fastcgi_params;
        fastcgi_param SCRIPT_FILENAME "{{RUNTIME_PATH}}/router.php";
        fastcgi_param PATH_INFO $fastcgi_path_info;
        fastcgi_buffers 16 32k;
        fastcgi_buffer_size 64k;
        fastcgi_busy_buffers_size 64k;
    }

    access_log off;
    error_log /var/log/nginx/sld-error.log;
"""

BASE_HTTP = ConfigTemplate(
    name="base-http",
    text=(
        "# --- Base Configuration ---\n"
        "server {\n"
        "{{LISTEN_HTTP}}\n"
        "    server_name {{DASHBOARD_DOMAIN}} *.{{TLD}};\n"
        + _ROUTER_LOCATIONS
        + "}\n"
    ),
    multiline=_LISTEN,
)

BASE_TLS = ConfigTemplate(
    name="base-tls",
    text=(
        "# --- Base Configuration (TLS) ---\n"
        "server {\n"
        "{{LISTEN_HTTP}}\n"
        "    server_name {{DASHBOARD_DOMAIN}} *.{{TLD}};\n"
        "    return 301 https://$host$request_uri;\n"
        "}\n"
        "\n"
        "server {\n"
        "{{LISTEN_HTTPS}}\n"
        "    server_name {{DASHBOARD_DOMAIN}} *.{{TLD}};\n"
        "    ssl_certificate \"{{CERT_FILE}}\";\n"
        "    ssl_certificate_key \"{{KEY_FILE}}\";\n"
        + _ROUTER_LOCATIONS
        + "}\n"
    ),
    multiline=_LISTEN,
)

# Lets sites behind a tunnel see the public host and scheme
_PROXY_HEADERS = """\
    set $proxy_host $host;
    if ($http_x_forwarded_host) {
        set $proxy_host $http_x_forwarded_host;
    }

    set $proxy_https $https;
    if ($http_x_forwarded_proto = "https") {
        set $proxy_https "on";
    }
"""

_PHP_SITE_LOCATIONS = """\
    index index.html index.htm index.php;

""" + _PROXY_HEADERS + """
    location / {
        try_files $uri $uri/ /index.php?$query_string;
    }

    location ~ \\.php$ {
        fastcgi_pass unix:{{PHP_SOCKET}};
        fastcgi_index index.php;
        fastcgi_param SCRIPT_FILENAME $realpath_root$fastcgi_script_name;
        include fastcgi_params;

        fastcgi_param HTTP_HOST $proxy_host;
        fastcgi_param SERVER_NAME $proxy_host;
        fastcgi_param HTTPS $proxy_https;

        fastcgi_buffers 16 32k;
        fastcgi_buffer_size 64k;
        fastcgi_busy_buffers_size 64k;
    }
"""

ISOLATED_HTTP = ConfigTemplate(
    name="isolated-http",
    text=(
        "\n# Isolated: {{DOMAIN}}\n"
        "server {\n"
        "{{LISTEN_HTTP}}\n"
        "    server_name {{DOMAIN}};\n"
        "    root \"{{WEB_ROOT}}\";\n"
        "\n"
        + _PHP_SITE_LOCATIONS
        + "}\n"
    ),
    multiline=_LISTEN,
)

ISOLATED_REDIRECT = ConfigTemplate(
    name="isolated-redirect",
    text=(
        "\n# Isolated: {{DOMAIN}}\n"
        "server {\n"
        "{{LISTEN_HTTP}}\n"
        "    server_name {{DOMAIN}};\n"
        "    return 301 https://$host$request_uri;\n"
        "}\n"
    ),
    multiline=_LISTEN,
)

ISOLATED_TLS = ConfigTemplate(
    name="isolated-tls",
    text=(
        "\nserver {\n"
        "{{LISTEN_HTTPS}}\n"
        "    server_name {{DOMAIN}};\n"
        "    root \"{{WEB_ROOT}}\";\n"
        "\n"
        "    ssl_certificate \"{{CERT_FILE}}\";\n"
        "    ssl_certificate_key \"{{KEY_FILE}}\";\n"
        "\n"
        + _PHP_SITE_LOCATIONS
        + "}\n"
    ),
    multiline=_LISTEN,
)


def addon_fragment_header(addon_name: str, fragment_name: str) -> str:
    """Comment marker preceding one add-on fragment."""
    return f"# --- Add-on: {addon_name} ({fragment_name}) ---"
