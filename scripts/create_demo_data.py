"""Create demo data (cascade settings and an approved, available doctor roster)."""

import asyncio

from sqlalchemy import select

from teleconsulta.db.init_db import create_tables, ensure_cascade_settings
from teleconsulta.db.session import AsyncSessionLocal
from teleconsulta.models.doctor import Doctor, DoctorStatus

DEMO_DOCTORS = [
    ("Dra. Ana Ribeiro", "ana.ribeiro@example.com", "CRM-SP 123456", "Cardiologia", 4.9),
    ("Dr. Bruno Costa", "bruno.costa@example.com", "CRM-SP 234567", "Cardiologia", 4.6),
    ("Dra. Carla Mendes", "carla.mendes@example.com", "CRM-RJ 345678", "Cardiologia", None),
    ("Dr. Daniel Souza", "daniel.souza@example.com", "CRM-MG 456789", "Clínica Geral", 4.8),
    ("Dra. Eduarda Lima", "eduarda.lima@example.com", "CRM-SP 567890", "Clínica Geral", 4.2),
    ("Dr. Felipe Araújo", "felipe.araujo@example.com", "CRM-PR 678901", "Pediatria", 4.7),
    ("Dra. Gabriela Rocha", "gabriela.rocha@example.com", "CRM-SP 789012", "Dermatologia", 4.5),
]


async def create_demo_data():
    """Create the settings row and the demo doctor roster."""
    await create_tables()

    async with AsyncSessionLocal() as session:
        cascade_settings = await ensure_cascade_settings(session)
        print(
            f"Cascade settings: {cascade_settings.doctors_per_round} doctor(s) per round, "
            f"{cascade_settings.max_rounds} round(s), "
            f"{cascade_settings.timeout_per_round_minutes} min timeout"
        )

        created = 0
        for index, (name, email, crm, specialty, rating) in enumerate(DEMO_DOCTORS):
            result = await session.execute(select(Doctor).where(Doctor.email == email))
            if result.scalar_one_or_none():
                print(f"Doctor {email} already exists, skipping...")
                continue

            session.add(
                Doctor(
                    full_name=name,
                    email=email,
                    crm=crm,
                    specialty=specialty,
                    phone=f"+55 11 9{index:04d}-0000",
                    status=DoctorStatus.APPROVED,
                    is_available=True,
                    rating=rating,
                )
            )
            created += 1

        await session.commit()
        print(f"Created {created} demo doctor(s)")


if __name__ == "__main__":
    asyncio.run(create_demo_data())
