"""
IAM policy statements granted to Kubernetes workloads through IRSA
"""

from typing import Any, Dict, List


def _allow_all(service: str) -> Dict[str, Any]:
    return {
        "Effect": "Allow",
        "Action": [f"{service}:*"],
        "Resource": "*"
    }


S3_POLICY = _allow_all("s3")
DYNAMODB_POLICY = _allow_all("dynamodb")
LAMBDA_POLICY = _allow_all("lambda")
BEDROCK_POLICY = _allow_all("bedrock")
APPSYNC_POLICY = _allow_all("appsync")
TRANSCRIBE_POLICY = _allow_all("transcribe")

SHARED_POLICIES = {
    "s3": S3_POLICY,
    "dynamodb": DYNAMODB_POLICY,
    "lambda": LAMBDA_POLICY,
    "bedrock": BEDROCK_POLICY,
    "appsync": APPSYNC_POLICY,
    "transcribe": TRANSCRIBE_POLICY,
}


def shared_policy_statements(names: List[str]) -> List[Dict[str, Any]]:
    """
    Statements for the named shared policies, in the order given

    Raises:
        ValueError: a name is not one of SHARED_POLICIES
    """
    unknown = [n for n in names if n not in SHARED_POLICIES]
    if unknown:
        raise ValueError(f"Unknown shared policies {unknown}; choose from {sorted(SHARED_POLICIES)}")
    return [SHARED_POLICIES[n] for n in dict.fromkeys(names)]


LOAD_BALANCER_CONTROLLER_STATEMENTS: List[Dict[str, Any]] = [
    {
        "Effect": "Allow",
        "Action": [
            "iam:CreateServiceLinkedRole",
            "ec2:DescribeAccountAttributes",
            "ec2:DescribeAddresses",
            "ec2:DescribeAvailabilityZones",
            "ec2:DescribeInternetGateways",
            "ec2:DescribeVpcs",
            "ec2:DescribeSubnets",
            "ec2:DescribeSecurityGroups",
            "ec2:DescribeInstances",
            "ec2:DescribeNetworkInterfaces",
            "ec2:DescribeTags",
            "ec2:GetCoipPoolUsage",
            "ec2:DescribeCoipPools",
            "elasticloadbalancing:DescribeLoadBalancers",
            "elasticloadbalancing:DescribeLoadBalancerAttributes",
            "elasticloadbalancing:DescribeListeners",
            "elasticloadbalancing:DescribeListenerCertificates",
            "elasticloadbalancing:DescribeSSLPolicies",
            "elasticloadbalancing:DescribeRules",
            "elasticloadbalancing:DescribeTargetGroups",
            "elasticloadbalancing:DescribeTargetGroupAttributes",
            "elasticloadbalancing:DescribeTargetHealth",
            "elasticloadbalancing:DescribeTags",
        ],
        "Resource": "*"
    },
    {
        "Effect": "Allow",
        "Action": [
            "cognito-idp:DescribeUserPoolClient",
            "acm:ListCertificates",
            "acm:DescribeCertificate",
            "iam:ListServerCertificates",
            "iam:GetServerCertificate",
            "waf-regional:GetWebACL",
            "waf-regional:GetWebACLForResource",
            "waf-regional:AssociateWebACL",
            "waf-regional:DisassociateWebACL",
            "wafv2:GetWebACL",
            "wafv2:GetWebACLForResource",
            "wafv2:AssociateWebACL",
            "wafv2:DisassociateWebACL",
            "shield:DescribeProtection",
            "shield:GetSubscriptionState",
            "shield:DescribeSubscription",
            "shield:CreateProtection",
            "shield:DeleteProtection",
        ],
        "Resource": "*"
    },
    {
        "Effect": "Allow",
        "Action": [
            "elasticloadbalancing:CreateLoadBalancer",
            "elasticloadbalancing:CreateTargetGroup",
        ],
        "Resource": "*",
        "Condition": {
            "StringEquals": {
                "elasticloadbalancing:CreateAction": [
                    "CreateTargetGroup",
                    "CreateLoadBalancer",
                ]
            }
        }
    },
]


def bucket_access_statements(bucket_name: str) -> List[Dict[str, Any]]:
    """Read/write access to a single bucket and its objects"""
    return [
        {
            "Effect": "Allow",
            "Action": ["s3:ListBucket", "s3:GetBucketLocation"],
            "Resource": f"arn:aws:s3:::{bucket_name}"
        },
        {
            "Effect": "Allow",
            "Action": ["s3:GetObject", "s3:PutObject", "s3:DeleteObject"],
            "Resource": f"arn:aws:s3:::{bucket_name}/*"
        },
    ]
