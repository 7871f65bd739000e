import argparse

from sqlmodel import select

from helpdesk.core.passwords import hash_password
from helpdesk.db import session as session_mod
from helpdesk.models.directory import Company, Department, TargetSystem
from helpdesk.models.user import User

DIRECTORY = {
    "IT": ["Email", "VPN", "Laptop", "Active Directory"],
    "HR": ["Payroll", "Leave Portal"],
    "Finance": ["ERP", "Expense Claims"],
}

USERS = [
    # id, username, first, last, department, role
    ("1001", "superadmin", "Super", "Admin", None, "super_admin"),
    ("1002", "it.admin", "Ira", "Tanaka", "IT", "admin"),
    ("1003", "it.agent", "Omar", "Haddad", "IT", "employee"),
    ("1004", "hr.admin", "Lena", "Berg", "HR", "admin"),
    ("1005", "hr.staff", "Ravi", "Menon", "HR", "employee"),
    ("1006", "fin.staff", "Ana", "Souza", "Finance", "employee"),
]


def seed(company_name: str, password: str, email_domain: str) -> dict[str, int]:
    session_mod.create_db_and_tables()
    counts = {"companies": 0, "departments": 0, "target_systems": 0, "users": 0}

    with session_mod.session_scope() as s:
        company = s.exec(select(Company).where(Company.name == company_name)).first()
        if not company:
            company = Company(name=company_name)
            s.add(company)
            s.commit()
            s.refresh(company)
            counts["companies"] += 1

        departments: dict[str, Department] = {}
        for dep_name, systems in DIRECTORY.items():
            dep = s.exec(
                select(Department).where(Department.name == dep_name).where(Department.company_id == company.id)
            ).first()
            if not dep:
                dep = Department(name=dep_name, company_id=company.id)
                s.add(dep)
                s.commit()
                s.refresh(dep)
                counts["departments"] += 1
            departments[dep_name] = dep

            existing = {t.name for t in s.exec(select(TargetSystem).where(TargetSystem.department_id == dep.id)).all()}
            for name in systems:
                if name not in existing:
                    s.add(TargetSystem(name=name, department_id=dep.id))
                    counts["target_systems"] += 1
        s.commit()

        for uid, username, first, last, dep_name, role in USERS:
            if s.get(User, uid):
                continue
            s.add(
                User(
                    id=uid,
                    username=username,
                    first_name=first,
                    last_name=last,
                    email=f"{username}@{email_domain}",
                    department_id=departments[dep_name].id if dep_name else None,
                    role=role,
                    password_hash=hash_password(password),
                )
            )
            counts["users"] += 1
        s.commit()

    return counts


def main():
    p = argparse.ArgumentParser(description="Seed the helpdesk directory with demo data")
    p.add_argument("--company", default="Acme Corp")
    p.add_argument("--password", default="changeme")
    p.add_argument("--email-domain", default="example.com")
    args = p.parse_args()

    counts = seed(args.company, args.password, args.email_domain)
    print("seeded", counts)


if __name__ == "__main__":
    main()
