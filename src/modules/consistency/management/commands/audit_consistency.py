"""Management command: report (and optionally repair) data violations."""

from __future__ import annotations

import json

from django.core.management.base import BaseCommand

from modules.consistency.auditor import build_consistency_auditor
from modules.core.middleware import bind_correlation_id


class Command(BaseCommand):
    help = "Audit orders and payments for invariant violations."

    def add_arguments(self, parser):
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Create pending payments for orders that have none.",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Print the full report as JSON.",
        )

    def handle(self, *args, **options):
        bind_correlation_id()
        report = build_consistency_auditor().audit(auto_fix=options["fix"])

        if options["json"]:
            payload = report.model_dump(mode="json")
            payload["summary"] = report.summary()
            self.stdout.write(json.dumps(payload, indent=2))
            return

        for violation in report.violations:
            self.stdout.write(
                f"[{violation.severity.value}] {violation.type}: {violation.message}"
            )
        for repair in report.repaired:
            self.stdout.write(
                self.style.SUCCESS(
                    f"Repaired order {repair.order_id}: payment {repair.payment_id} "
                    f"for {repair.amount}."
                )
            )
        summary = report.summary()
        style = self.style.SUCCESS if report.is_clean else self.style.WARNING
        self.stdout.write(
            style(
                f"{summary['total']} violation(s), {summary['repaired']} repaired."
            )
        )
        for check in report.failed_checks:
            self.stderr.write(self.style.ERROR(f"Check {check} failed; see logs."))
