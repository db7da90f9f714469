"""
NetWarden LLM Prompt Templates

Prompts for classifying anomaly findings.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class PromptTemplates:
    """Collection of prompt templates for finding classification."""

    # =========================================================================
    # System Prompts
    # =========================================================================

    SYSTEM_CLASSIFIER = """You are a cybersecurity analyst reviewing traffic anomalies detected while monitoring a single IP address. Each finding compares the traffic observed in one scan window against a previously established baseline for the same address.

Produce a security assessment with the following components:
1. Threat severity: "low", "medium", "high", or "critical"
2. Threat type, choosing the most appropriate of:
   - "ddos"
   - "brute_force"
   - "port_scan"
   - "network_scan"
   - "backdoor"
   - "malware"
   - "other"
3. A brief analysis of the likely cause (2-3 sentences)
4. Specific recommendations to investigate or mitigate (2-3 points)

Respond with a single JSON object and nothing else:
{
  "severity": "low|medium|high|critical",
  "type": "one_of_the_threat_types_listed_above",
  "analysis": "Your analysis here",
  "recommendation": "Your recommendations here"
}

When weighing the finding, focus on:
- How far packet and byte rates exceed the baseline
- Growth in the number of distinct sources (distributed activity)
- Connection attempt bursts (scanning or brute force)
- Protocol mix changes relative to normal traffic
- The host survey, when present: ping packet loss and response time, and
  open TCP ports (remote access, file sharing or mail services exposed)
- Benign explanations such as backups, updates or scheduled jobs"""

    # =========================================================================
    # Classification Prompt
    # =========================================================================

    @staticmethod
    def classification_prompt(finding_json: str, target_ip: str) -> str:
        """
        Generate the user prompt for one finding.

        Args:
            finding_json: Serialized AnomalyFinding
            target_ip: Monitored address

        Returns:
            Complete prompt for LLM
        """
        return f"""IP MONITORING ANOMALY REVIEW

Target IP: {target_ip}
Reviewed at: {datetime.now().isoformat()}

FINDING:
{finding_json}

Based on this finding, provide a security assessment in the required JSON format."""
