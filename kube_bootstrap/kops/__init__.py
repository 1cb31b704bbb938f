"""kops cluster provisioning on AWS."""
