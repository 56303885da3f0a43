#!/usr/bin/env python3
"""
Initialize default users for the clinic system.
Run with: python3 init_users.py
"""
from clinicdesk import create_app
from clinicdesk.extensions import db
from clinicdesk.models import User

# Default users to create
DEFAULT_USERS = [
    {
        'email': 'admin@clinic.com',
        'password': 'admin123',
        'name': 'Clinic Admin',
        'role': 'admin',
    },
    {
        'email': 'staff1@clinic.com',
        'password': 'staff123',
        'name': 'Jane Staff',
        'role': 'clinical_staff',
    },
    {
        'email': 'doctor1@clinic.com',
        'password': 'doctor123',
        'name': 'John Doctor',
        'role': 'doctor',
    },
    {
        'email': 'patient1@clinic.com',
        'password': 'patient123',
        'name': 'Bob Patient',
        'role': 'patient',
    },
]


def create_users():
    """Create default users"""
    app = create_app()

    with app.app_context():
        db.create_all()

        print("=" * 60)
        print("Initializing Users")
        print("=" * 60)
        print()

        created_count = 0

        for user_data in DEFAULT_USERS:
            email = user_data['email']

            # Check if user already exists
            if User.query.filter_by(email=email).first():
                print(f"  - User '{email}' already exists (skipping)")
                continue

            user = User(
                email=email,
                name=user_data['name'],
                role=user_data['role'],
                phone=user_data.get('phone', ''),
                is_active=True
            )
            user.set_password(user_data['password'])

            db.session.add(user)
            db.session.flush()
            if user.role == 'patient':
                user.reference_number = f"PAT-{user.id:06d}"
            created_count += 1
            print(f"  ✓ Created: {email} ({user_data['role']}) - Password: {user_data['password']}")

        db.session.commit()

        print()
        print("=" * 60)
        print(f"✅ Created {created_count} new user(s)")
        print("=" * 60)
        print("\n⚠️  IMPORTANT: Change passwords after first login!")
        print("\nAvailable Roles:")
        print("  - admin")
        print("  - clinical_staff")
        print("  - doctor")
        print("  - patient")


if __name__ == '__main__':
    create_users()
