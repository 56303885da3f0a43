#!/usr/bin/env python3
"""
Assign a default doctor to every appointment booked without one.
Run with: python3 fix_unassigned_appointments.py [--doctor-id ID] [--dry-run]
"""
import argparse
import sys

from clinicdesk import create_app
from clinicdesk.errors import ClinicError
from clinicdesk.services import ActorContext, UnitOfWork
from clinicdesk.services.remediation_service import assign_default_doctor, find_unassigned


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument('--doctor-id', type=int, default=None,
                        help='doctor to assign (default: first active doctor)')
    parser.add_argument('--dry-run', action='store_true',
                        help='only list the appointments that would be fixed')
    args = parser.parse_args(argv)

    app = create_app()
    with app.app_context():
        unassigned = find_unassigned()
        print(f"Found {len(unassigned)} appointment(s) without a doctor")
        for appointment in unassigned:
            print(f"  - {appointment.reference_number or appointment.id} "
                  f"patient={appointment.patient_id} at {appointment.scheduled_at:%Y-%m-%d %H:%M}")

        if args.dry_run or not unassigned:
            return 0

        try:
            result = assign_default_doctor(ActorContext.system(), UnitOfWork(), args.doctor_id)
        except ClinicError as e:
            print(f"❌ {e.message}", file=sys.stderr)
            return 1

        print(f"✅ Assigned doctor {result.doctor_id} to {result.fixed_count} appointment(s)")
        return 0


if __name__ == '__main__':
    sys.exit(main())
