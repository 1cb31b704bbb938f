#!/usr/bin/env python3
"""Configuration setup helper for kube-bootstrap.

This script copies one of the configuration templates to config.yaml and
fills in the cluster name, state store bucket and region.
"""

import re
from pathlib import Path
from typing import Dict, Any
import yaml


TEMPLATES = {
    "1": {
        "name": "kops with private DNS",
        "file": "config-example-private.yaml",
        "description": "Private Route 53 hosted zone associated with the cluster VPC",
    },
    "2": {
        "name": "kops with gossip DNS",
        "file": "config-example-gossip.yaml",
        "description": "No hosted zone; the cluster name must end in .k8s.local",
    },
    "3": {
        "name": "kubeadm control plane",
        "file": "config-example-kubeadm.yaml",
        "description": "Single Debian/Ubuntu host, no AWS resources",
    },
}


def display_banner():
    """Display setup banner."""
    print("""
╔══════════════════════════════════════════════════════════════════════════════╗
║                      kube-bootstrap Configuration Setup                      ║
║                                                                              ║
║              Select and customize a configuration template                   ║
║                                                                              ║
╚══════════════════════════════════════════════════════════════════════════════╝
    """)


def get_template_choice() -> str:
    """Get user's template choice."""
    print("Available Configuration Templates:")
    print("-" * 50)

    for key, template in TEMPLATES.items():
        print(f"{key}. {template['name']}")
        print(f"   {template['description']}")
        print()

    while True:
        choice = input(f"Select template (1-{len(TEMPLATES)}): ").strip()
        if choice in TEMPLATES:
            return TEMPLATES[choice]["file"]
        print("Invalid choice. Please select 1, 2, or 3.")


def default_bucket_name(cluster_name: str) -> str:
    """Derive an S3 bucket name from the cluster name."""
    return re.sub(r"[^a-z0-9-]", "-", cluster_name.lower()).strip("-") + "-state-store"


def get_user_inputs(template_file: str) -> Dict[str, Any]:
    """Get required user inputs."""
    print("\nRequired Configuration:")
    print("-" * 30)

    inputs: Dict[str, Any] = {}

    if template_file == "config-example-kubeadm.yaml":
        hostname = input("Hostname [kubemaster]: ").strip()
        inputs["hostname"] = hostname or "kubemaster"
        return inputs

    gossip = template_file == "config-example-gossip.yaml"
    suffix = " (must end in .k8s.local)" if gossip else ""
    inputs["cluster_name"] = input(f"Cluster name{suffix}: ").strip()

    bucket = default_bucket_name(inputs["cluster_name"])
    answer = input(f"State store bucket [{bucket}]: ").strip()
    inputs["bucket"] = answer or bucket

    default_region = "us-east-2"
    region = input(f"AWS region [{default_region}]: ").strip()
    inputs["region"] = region or default_region

    return inputs


def customize_config(template_file: str, inputs: Dict[str, Any]) -> None:
    """Customize configuration with user inputs."""
    template_path = Path("config") / template_file
    output_path = Path("config.yaml")

    with open(template_path, "r") as f:
        config = yaml.safe_load(f)

    if "hostname" in inputs:
        config["kubeadm"]["hostname"] = inputs["hostname"]
    else:
        region = inputs["region"]
        config["aws"]["region"] = region
        config["cluster"]["name"] = inputs["cluster_name"]
        config["state_store"]["bucket"] = inputs["bucket"]
        if config["cluster"].get("dns") == "private":
            config["cluster"]["dns_zone"] = inputs["cluster_name"]
            config["cluster"]["zones"] = [f"{region}{zone}" for zone in "abc"]

    with open(output_path, "w") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)

    print(f"\n✅ Configuration saved to: {output_path}")


def main():
    """Main setup function."""
    display_banner()

    if Path("config.yaml").exists():
        overwrite = input("config.yaml already exists. Overwrite? (y/N): ").strip().lower()
        if overwrite != "y":
            print("Setup cancelled.")
            return

    template_file = get_template_choice()
    inputs = get_user_inputs(template_file)
    customize_config(template_file, inputs)

    print("\nNext Steps:")
    print("1. Review and edit config.yaml if needed")
    print("2. Run: kube-bootstrap validate")
    if "hostname" in inputs:
        print("3. Run: kube-bootstrap kubeadm")
    else:
        print("3. Run: kube-bootstrap create")


if __name__ == "__main__":
    main()
