"""
Product recipe registry — what each product needs, per OS family.

Pure data, no logic. The plan builder turns one recipe plus
PlatformFacts into a Plan.

Per-family fields are dicts keyed by OSFamily value with an optional
``_default``. URL, suite and archive fields are ``str.format`` templates
over: distro_id, vendor (ubuntu/debian for derivatives such as Mint),
codename, version_major, arch, rhel_flavor, prometheus_version,
node_exporter_version.

A ``files`` entry may name the services it configures under
``restarts``; those are restarted when the file changes.
"""

from __future__ import annotations

# Default release versions for tarball-installed components
PROMETHEUS_VERSION = "3.5.0"
NODE_EXPORTER_VERSION = "1.9.1"

# ── Signing key fingerprints (primary keys) ──────────────────────────

NGINX_FINGERPRINTS = (
    "573BFD6B3D8FBC641079A6ABABF5BD827BD9BF62",
    "8540A6F18833A80E9C1653A42FD21310B49F6B46",
    "9E9BE90EACBCDE69FE9B204CBCDCD8A38D88A2B3",
)
DOCKER_DEB_FINGERPRINTS = ("9DC858229FC7DD38854AE2D88D81803C0EBFCD88",)
DOCKER_RPM_FINGERPRINTS = ("060A61C51B558A7F742B77AAC52FEB6B621E9F35",)
GRAFANA_FINGERPRINTS = ("B53AE77BADB630A683046005963FA27710458545",)

# ── Configuration file contents ──────────────────────────────────────

DOCKER_DAEMON_JSON = """\
{
  "exec-opts": ["native.cgroupdriver=systemd"],
  "log-driver": "json-file",
  "log-opts": {
    "max-size": "100m"
  },
  "storage-driver": "overlay2"
}
"""

PROMETHEUS_YML = """\
global:
  scrape_interval: 15s

scrape_configs:
  - job_name: "prometheus"
    static_configs:
      - targets: ["localhost:9090"]

  - job_name: "node_exporter"
    static_configs:
      - targets: ["localhost:9100"]
        labels:
          app: "node-exporter"
"""

PROMETHEUS_UNIT = """\
[Unit]
Description=Prometheus Monitoring
Wants=network-online.target
After=network-online.target

[Service]
User=prometheus
Group=prometheus
Type=simple
ExecStart=/usr/local/bin/prometheus \\
  --config.file=/etc/prometheus/prometheus.yml \\
  --storage.tsdb.path=/var/lib/prometheus/

[Install]
WantedBy=multi-user.target
"""

NODE_EXPORTER_UNIT = """\
[Unit]
Description=Node Exporter
Wants=network-online.target
After=network-online.target

[Service]
User=node_exporter
ExecStart=/usr/local/bin/node_exporter

[Install]
WantedBy=multi-user.target
"""

_GITHUB = "https://github.com/prometheus"


PRODUCT_RECIPES: dict[str, dict] = {

    # ── nginx (nginx.org mainline-stable repository) ────────────

    "nginx": {
        "label": "nginx",
        "prerequisites": {
            "debian": ["ca-certificates", "curl", "gnupg"],
            "rhel": ["ca-certificates", "curl", "gnupg2"],
        },
        "repo": {
            "name": "nginx",
            "debian": {
                "url": "https://nginx.org/packages/{vendor}",
                "suite": "{codename}",
                "components": "nginx",
                "key_url": "https://nginx.org/keys/nginx_signing.key",
            },
            "rhel": {
                "url": "https://nginx.org/packages/{rhel_flavor}/$releasever/$basearch/",
                "key_url": "https://nginx.org/keys/nginx_signing.key",
            },
            "fingerprints": NGINX_FINGERPRINTS,
        },
        "packages": {"_default": ["nginx"]},
        "services": ["nginx"],
        "checks": [
            {"service": "nginx"},
            {"version": {"binary": "nginx", "args": ["-v"],
                         "pattern": r"nginx/(\d+\.\d+\.\d+)"}},
            {"command": {"name": "nginx-config", "argv": ["nginx", "-t"]}},
            {"port": 80},
        ],
        "firewall": ["80/tcp", "443/tcp"],
    },

    # ── Docker Engine (download.docker.com) ─────────────────────

    "docker": {
        "label": "Docker Engine",
        "conflicts": {
            "debian": [
                "docker.io", "docker-doc", "docker-compose", "docker-compose-v2",
                "podman-docker", "containerd", "runc",
            ],
            "rhel": [
                "docker", "docker-client", "docker-client-latest", "docker-common",
                "docker-latest", "docker-latest-logrotate", "docker-logrotate",
                "docker-engine", "podman", "runc",
            ],
        },
        "prerequisites": {
            "debian": ["ca-certificates", "curl", "gnupg"],
            "rhel": ["device-mapper-persistent-data", "lvm2", "curl"],
        },
        "repo": {
            "name": "docker",
            "debian": {
                "url": "https://download.docker.com/linux/{vendor}",
                "suite": "{codename}",
                "components": "stable",
                "key_url": "https://download.docker.com/linux/{vendor}/gpg",
                "fingerprints": DOCKER_DEB_FINGERPRINTS,
            },
            "rhel": {
                "url": "https://download.docker.com/linux/{rhel_flavor}/$releasever/$basearch/stable",
                "key_url": "https://download.docker.com/linux/{rhel_flavor}/gpg",
                "fingerprints": DOCKER_RPM_FINGERPRINTS,
            },
        },
        "packages": {
            "_default": [
                "docker-ce", "docker-ce-cli", "containerd.io",
                "docker-buildx-plugin", "docker-compose-plugin",
            ],
        },
        "files": [
            {"path": "/etc/docker/daemon.json", "content": DOCKER_DAEMON_JSON, "mode": 0o644,
             "restarts": ["docker"]},
        ],
        "services": ["containerd", "docker"],
        "group": "docker",
        "checks": [
            {"service": "containerd"},
            {"service": "docker"},
            {"version": {"binary": "docker", "args": ["--version"],
                         "pattern": r"Docker version\s+(\d+\.\d+\.\d+)"}},
        ],
        "smoke_test": {"name": "hello-world", "argv": ["docker", "run", "--rm", "hello-world"]},
        "firewall": ["2376/tcp", "2377/tcp", "4789/udp", "7946/tcp", "7946/udp"],
        # firewalld only: let container bridge traffic through and NAT it out
        "firewall_zone": {"trusted_interfaces": ["docker0"], "masquerade": True},
    },

    # ── Grafana + Prometheus + Node Exporter ────────────────────

    "grafana-stack": {
        "label": "Grafana observability stack",
        "prerequisites": {
            "debian": ["ca-certificates", "curl", "gnupg", "tar"],
            "rhel": ["ca-certificates", "curl", "gnupg2", "tar"],
        },
        "users": ["prometheus", "node_exporter"],
        "repo": {
            "name": "grafana",
            "debian": {
                "url": "https://apt.grafana.com",
                "suite": "stable",
                "components": "main",
                "key_url": "https://apt.grafana.com/gpg.key",
            },
            "rhel": {
                "url": "https://rpm.grafana.com",
                "key_url": "https://rpm.grafana.com/gpg.key",
            },
            "fingerprints": GRAFANA_FINGERPRINTS,
        },
        "packages": {"_default": ["grafana"]},
        "archives": [
            {
                "name": "prometheus",
                "url": _GITHUB + "/prometheus/releases/download/v{prometheus_version}/"
                       "prometheus-{prometheus_version}.linux-{arch}.tar.gz",
                "binaries": ["prometheus", "promtool"],
                "version": "{prometheus_version}",
            },
            {
                "name": "node_exporter",
                "url": _GITHUB + "/node_exporter/releases/download/v{node_exporter_version}/"
                       "node_exporter-{node_exporter_version}.linux-{arch}.tar.gz",
                "binaries": ["node_exporter"],
                "version": "{node_exporter_version}",
            },
        ],
        "directories": [
            {"path": "/etc/prometheus", "owner": "prometheus:prometheus"},
            {"path": "/var/lib/prometheus", "owner": "prometheus:prometheus"},
        ],
        "files": [
            {"path": "/etc/prometheus/prometheus.yml", "content": PROMETHEUS_YML,
             "mode": 0o644, "owner": "prometheus:prometheus", "restarts": ["prometheus"]},
            {"path": "/etc/systemd/system/prometheus.service", "content": PROMETHEUS_UNIT,
             "mode": 0o644, "restarts": ["prometheus"]},
            {"path": "/etc/systemd/system/node_exporter.service", "content": NODE_EXPORTER_UNIT,
             "mode": 0o644, "restarts": ["node_exporter"]},
        ],
        "services": ["prometheus", "node_exporter", "grafana-server"],
        "checks": [
            {"service": "prometheus"},
            {"service": "node_exporter"},
            {"service": "grafana-server"},
            {"version": {"binary": "prometheus", "args": ["--version"],
                         "pattern": r"prometheus, version (\d+\.\d+\.\d+)"}},
            {"version": {"binary": "node_exporter", "args": ["--version"],
                         "pattern": r"node_exporter, version (\d+\.\d+\.\d+)"}},
            {"version": {"binary": "grafana", "args": ["--version"],
                         "pattern": r"version\s+v?(\d+\.\d+\.\d+)"}},
            {"port": 9090},
            {"port": 9100},
            {"port": 3000},
        ],
        "firewall": ["3000/tcp"],
    },
}

# Alternate product names
PRODUCT_ALIASES: dict[str, str] = {
    "grafana-observability-stack": "grafana-stack",
}
