import logging
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import jwt
import pytest
from sqlalchemy import select

from propcare.api import invites as invites_api
from propcare.core.config import get_settings
from propcare.core.database import utcnow
from propcare.core.security import hash_token
from propcare.models import Invite, Organization, PropertyStaff, Tenant, User
from propcare.schemas.invites import InviteRole
from propcare.schemas.organizations import MaintenanceRole
from propcare.schemas.users import UserType
from propcare.services import email_service, notifications, sms_service
from propcare.services.notifications import InviteCreated, deliver_invite
from propcare.tests.factories import add_staff, bearer, create_property, create_user

NEW_PASSWORD = "Welc0me!Home"
INVITE_TOKEN = "a" * 64


@pytest.fixture
def sent(monkeypatch) -> list[InviteCreated]:
    events: list[InviteCreated] = []
    monkeypatch.setattr(invites_api, "deliver_invite", events.append)
    return events


def _make_invite(db, organization, owner, **overrides) -> Invite:
    values = {
        "token_hash": hash_token(INVITE_TOKEN),
        "role": InviteRole.org_admin,
        "expires_at": utcnow() + timedelta(days=7),
        "organization_id": organization.id,
        "created_by": owner.id,
        "email": "invitee@acme.com",
    }
    values.update(overrides)
    invite = Invite(**values)
    db.add(invite)
    db.commit()
    db.refresh(invite)
    return invite


def test_create_staff_invite_persists_and_schedules_delivery(
    client, db_session, owner_headers, prop, sent
):
    response = client.post(
        "/invites?email=true",
        json={
            "role": "staff",
            "email": "Fixer@Acme.com",
            "propertyId": prop.opaque_id,
            "maintenanceRole": "manager",
        },
        headers=owner_headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Invite sent"
    assert body["delivery"] == {"email": True, "phone": False}
    assert body["invite"]["role"] == "staff"
    assert body["invite"]["email"] == "fixer@acme.com"
    assert "token" not in body["invite"]

    stored = db_session.execute(select(Invite)).scalar_one()
    assert stored.property_id == prop.id
    assert stored.maintenance_role is MaintenanceRole.manager

    assert len(sent) == 1
    assert sent[0].accept_link.startswith("https://frontend.local/invites/")
    raw_token = sent[0].accept_link.split("/")[-2]
    assert len(raw_token) == 64
    assert stored.token_hash == hash_token(raw_token)
    assert raw_token not in stored.token_hash
    assert sent[0].send_email is True
    assert sent[0].send_phone is False


def test_invite_phone_is_normalized(client, db_session, owner_headers, sent):
    response = client.post(
        "/invites?phone=true",
        json={"role": "org_admin", "phone": "(555) 123-4567"},
        headers=owner_headers,
    )

    assert response.status_code == 201
    assert response.json()["invite"]["phone"] == "+15551234567"


@pytest.mark.parametrize(
    "payload",
    [
        {"role": "staff", "email": "x@acme.com", "maintenanceRole": "member"},
        {"role": "staff", "email": "x@acme.com", "propertyId": "p"},
        {"role": "tenant", "email": "x@acme.com"},
        {"role": "org_admin", "email": "x@acme.com", "unitNumber": "1A"},
        {"role": "org_admin"},
    ],
)
def test_invalid_invite_shapes_are_rejected(client, owner_headers, payload, sent):
    response = client.post("/invites?email=true", json=payload, headers=owner_headers)

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_FAILED"
    assert sent == []


def test_invite_requires_a_delivery_flag(client, owner_headers, sent):
    response = client.post(
        "/invites",
        json={"role": "org_admin", "email": "x@acme.com"},
        headers=owner_headers,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == (
        "At least one delivery method (email or phone) must be true"
    )


def test_phone_delivery_needs_a_phone(client, owner_headers, sent):
    response = client.post(
        "/invites?phone=true",
        json={"role": "org_admin", "email": "x@acme.com"},
        headers=owner_headers,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot send via phone - no phone number provided"


def test_invite_for_foreign_property_is_not_found(client, db_session, owner_headers, sent):
    foreign_org = Organization(name="Foreign Org", contact_info="f@org.com")
    db_session.add(foreign_org)
    db_session.commit()
    foreign = create_property(db_session, foreign_org, name="Far Away")

    response = client.post(
        "/invites?email=true",
        json={"role": "tenant", "email": "x@acme.com", "propertyId": foreign.opaque_id},
        headers=owner_headers,
    )

    assert response.status_code == 404
    assert response.json()["detail"] == "Property not found"


def test_invite_for_existing_user_conflicts(client, owner_headers, sent):
    response = client.post(
        "/invites?email=true",
        json={"role": "org_admin", "email": "owner@acme.com"},
        headers=owner_headers,
    )

    assert response.status_code == 409


def test_duplicate_pending_invite_conflicts(client, owner_headers, sent):
    payload = {"role": "org_admin", "email": "twice@acme.com"}

    first = client.post("/invites?email=true", json=payload, headers=owner_headers)
    second = client.post("/invites?email=true", json=payload, headers=owner_headers)

    assert first.status_code == 201
    assert second.status_code == 409
    assert len(sent) == 1


def test_staff_cannot_create_invites(client, db_session, organization, prop, sent):
    manager = add_staff(db_session, prop, email="boss@acme.com", role=MaintenanceRole.manager)

    response = client.post(
        "/invites?email=true",
        json={"role": "org_admin", "email": "x@acme.com"},
        headers=bearer(manager, organization, prop),
    )

    assert response.status_code == 403


def test_invite_details_include_organization_and_property(
    client, db_session, organization, owner, prop
):
    _make_invite(
        db_session,
        organization,
        owner,
        role=InviteRole.tenant,
        property_id=prop.id,
        unit_number="7C",
    )

    response = client.get(f"/invites/{INVITE_TOKEN}")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Invite token details"
    assert body["invite"]["organization"] == {
        "id": organization.opaque_id,
        "name": organization.name,
    }
    assert body["invite"]["property"]["id"] == prop.opaque_id
    assert body["invite"]["unitNumber"] == "7C"


def test_unknown_invite_is_not_found(client):
    response = client.get(f"/invites/{'f' * 64}")

    assert response.status_code == 404
    assert response.json()["detail"] == "Invalid or expired invite"


def test_expired_invite_is_rejected(client, db_session, organization, owner):
    _make_invite(
        db_session, organization, owner, expires_at=utcnow() - timedelta(seconds=1)
    )

    details = client.get(f"/invites/{INVITE_TOKEN}")
    accept = client.post(
        f"/invites/{INVITE_TOKEN}/accept",
        json={"name": "Late", "password": NEW_PASSWORD},
    )

    assert details.status_code == 400
    assert details.json()["detail"] == "Invite expired"
    assert accept.status_code == 400
    assert accept.json()["detail"] == "Invite expired"


def test_accept_org_admin_invite_creates_user_and_session(
    client, db_session, organization, owner
):
    _make_invite(db_session, organization, owner)

    response = client.post(
        f"/invites/{INVITE_TOKEN}/accept",
        json={"name": "New Admin", "password": NEW_PASSWORD},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["user"]["userType"] == "org_admin"
    assert body["organization"]["id"] == organization.opaque_id
    assert "refreshToken" in client.cookies

    user = db_session.execute(
        select(User).where(User.email == "invitee@acme.com")
    ).scalar_one()
    assert user.org_admin.organization_id == organization.id

    second = client.post(
        f"/invites/{INVITE_TOKEN}/accept",
        json={"name": "Again", "password": NEW_PASSWORD},
    )
    assert second.status_code == 400
    assert second.json()["detail"] == "Invite already accepted"


def test_tenant_acceptance_requires_unit_number(client, db_session, organization, owner, prop):
    _make_invite(
        db_session, organization, owner, role=InviteRole.tenant, property_id=prop.id
    )

    missing = client.post(
        f"/invites/{INVITE_TOKEN}/accept",
        json={"name": "Renter", "password": NEW_PASSWORD},
    )
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Unit number is required for tenant registration"

    accepted = client.post(
        f"/invites/{INVITE_TOKEN}/accept",
        json={"name": "Renter", "password": NEW_PASSWORD, "unitNumber": "12"},
    )
    assert accepted.status_code == 201
    assert accepted.json()["property"]["id"] == prop.opaque_id

    tenancy = db_session.execute(select(Tenant)).scalar_one()
    assert tenancy.unit_number == "12"
    assert tenancy.property_id == prop.id


def test_failed_acceptance_rolls_everything_back(client, db_session, organization, owner, prop):
    invite = _make_invite(
        db_session, organization, owner, role=InviteRole.staff, property_id=prop.id
    )

    response = client.post(
        f"/invites/{INVITE_TOKEN}/accept",
        json={"name": "Broken", "password": NEW_PASSWORD},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid staff invite configuration"
    assert db_session.execute(
        select(User).where(User.email == "invitee@acme.com")
    ).first() is None
    db_session.refresh(invite)
    assert invite.accepted_at is None


def test_acceptance_conflicts_when_identity_was_taken(
    client, db_session, organization, owner
):
    _make_invite(db_session, organization, owner)
    create_user(db_session, email="invitee@acme.com", user_type=UserType.tenant)

    response = client.post(
        f"/invites/{INVITE_TOKEN}/accept",
        json={"name": "Too Late", "password": NEW_PASSWORD},
    )

    assert response.status_code == 409


def test_creator_cannot_accept_own_invite(client, db_session, organization, owner, owner_headers):
    _make_invite(db_session, organization, owner)

    response = client.post(
        f"/invites/{INVITE_TOKEN}/accept",
        json={"name": "Self", "password": NEW_PASSWORD},
        headers=owner_headers,
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "You cannot accept an invite you created"


def test_staff_manager_invite_end_to_end(client, db_session, owner_headers, organization, prop, sent):
    created = client.post(
        "/invites?email=true",
        json={
            "role": "staff",
            "email": "lead@acme.com",
            "propertyId": prop.opaque_id,
            "maintenanceRole": "manager",
        },
        headers=owner_headers,
    )
    assert created.status_code == 201
    token = sent[0].accept_link.split("/")[-2]

    accepted = client.post(
        f"/invites/{token}/accept",
        json={"name": "Lead Tech", "password": NEW_PASSWORD},
    )

    assert accepted.status_code == 201
    body = accepted.json()
    claims = jwt.decode(body["accessToken"], options={"verify_signature": False})
    assert claims["userType"] == "staff"
    assert claims["organizationId"] == organization.opaque_id
    assert claims["propertyId"] == prop.opaque_id
    assert [p["id"] for p in body["properties"]] == [prop.opaque_id]

    link = db_session.execute(select(PropertyStaff)).scalar_one()
    assert link.property_id == prop.id
    assert link.role is MaintenanceRole.manager

    staff_list = client.get(
        f"/organizations/{organization.opaque_id}/properties/{prop.opaque_id}/staff",
        headers={"Authorization": f"Bearer {body['accessToken']}"},
    )
    assert staff_list.status_code == 200
    assert [m["user"]["email"] for m in staff_list.json()] == ["lead@acme.com"]

    login = client.post(
        "/auth/login", json={"email": "lead@acme.com", "password": NEW_PASSWORD}
    )
    assert login.status_code == 200


def test_deliver_invite_uses_requested_channels(monkeypatch):
    emails, texts = [], []
    monkeypatch.setattr(
        notifications, "send_invitation_email", lambda *args: emails.append(args)
    )
    monkeypatch.setattr(
        notifications, "send_invitation_sms", lambda *args: texts.append(args)
    )

    deliver_invite(
        InviteCreated(
            role=InviteRole.tenant,
            organization_name="Acme",
            accept_link="https://frontend.local/invites/t/accept",
            email="a@acme.com",
            phone="+15551234567",
            send_email=False,
            send_phone=True,
        )
    )

    assert emails == []
    assert texts == [("+15551234567", "Acme", "https://frontend.local/invites/t/accept")]


def test_deliver_invite_swallows_channel_failures(monkeypatch, caplog):
    def boom(*args):
        raise ConnectionError("smtp down")

    monkeypatch.setattr(notifications, "send_invitation_email", boom)

    deliver_invite(
        InviteCreated(
            role=InviteRole.org_admin,
            organization_name="Acme",
            accept_link="https://frontend.local/invites/t/accept",
            email="a@acme.com",
            phone=None,
            send_email=True,
            send_phone=False,
        )
    )

    assert "Invite email delivery failed" in caplog.text


def test_stale_bearer_does_not_block_acceptance(client, db_session, organization, owner):
    _make_invite(db_session, organization, owner)
    now = datetime.now(UTC)
    expired = jwt.encode(
        {
            "sub": owner.opaque_id,
            "userType": "org_owner",
            "typ": "access",
            "iat": int((now - timedelta(hours=1)).timestamp()),
            "exp": int((now - timedelta(minutes=1)).timestamp()),
        },
        get_settings().jwt_access_secret,
        algorithm="HS256",
    )

    response = client.post(
        f"/invites/{INVITE_TOKEN}/accept",
        json={"name": "Returning", "password": NEW_PASSWORD},
        headers={"Authorization": f"Bearer {expired}"},
    )

    assert response.status_code == 201
    assert response.json()["user"]["email"] == "invitee@acme.com"


def test_malformed_bearer_is_treated_as_anonymous_on_accept(
    client, db_session, organization, owner
):
    _make_invite(db_session, organization, owner)

    response = client.post(
        f"/invites/{INVITE_TOKEN}/accept",
        json={"name": "Returning", "password": NEW_PASSWORD},
        headers={"Authorization": "Bearer not-a-token"},
    )

    assert response.status_code == 201


def test_other_signed_in_user_cannot_accept(client, db_session, organization, owner, prop):
    _make_invite(db_session, organization, owner)
    someone_else = add_staff(
        db_session, prop, email="someone@acme.com", role=MaintenanceRole.member
    )

    response = client.post(
        f"/invites/{INVITE_TOKEN}/accept",
        json={"name": "Intruder", "password": NEW_PASSWORD},
        headers=bearer(someone_else),
    )

    assert response.status_code == 403
    assert response.json()["detail"] == (
        "This invite is for a different user. Please log out to accept this invite."
    )
    assert db_session.execute(
        select(User).where(User.email == "invitee@acme.com")
    ).first() is None


def test_invite_for_archived_property_is_rejected(
    client, db_session, owner_headers, prop, sent
):
    prop.archived_at = utcnow()
    db_session.commit()

    response = client.post(
        "/invites?email=true",
        json={
            "role": "tenant",
            "email": "renter@acme.com",
            "propertyId": prop.opaque_id,
        },
        headers=owner_headers,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Property is archived"
    assert sent == []


@pytest.mark.parametrize(
    ("app_env", "logged"), [("development", True), ("test", False), ("staging", False)]
)
def test_accept_link_is_only_logged_in_development(monkeypatch, caplog, app_env, logged):
    monkeypatch.setattr(notifications, "get_settings", lambda: SimpleNamespace(app_env=app_env))
    monkeypatch.setattr(notifications, "send_invitation_email", lambda *args: None)
    caplog.set_level(logging.INFO, logger="propcare.services.notifications")
    link = f"https://frontend.local/invites/{INVITE_TOKEN}/accept"

    deliver_invite(
        InviteCreated(
            role=InviteRole.org_admin,
            organization_name="Acme",
            accept_link=link,
            email="a@acme.com",
            phone=None,
            send_email=True,
            send_phone=False,
        )
    )

    assert (INVITE_TOKEN in caplog.text) is logged


def test_unconfigured_channels_do_not_log_recipients(monkeypatch, caplog):
    monkeypatch.setattr(email_service, "HOST", None)
    caplog.set_level(logging.INFO, logger="propcare.services")

    email_service.send_invitation_email(
        "private@acme.com", "Acme", "tenant", "https://frontend.local/x"
    )
    sms_service.send_invitation_sms("+15559876543", "Acme", "https://frontend.local/x")

    assert "skipping" in caplog.text
    assert "private@acme.com" not in caplog.text
    assert "+15559876543" not in caplog.text


def test_invitation_email_escapes_organization_name(monkeypatch):
    delivered = []

    class FakeSMTP:
        def __init__(self, host, port, timeout=None):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def ehlo(self):
            pass

        def starttls(self, context=None):
            pass

        def login(self, user, password):
            pass

        def send_message(self, msg):
            delivered.append(msg)

    monkeypatch.setattr(email_service, "HOST", "smtp.acme.com")
    monkeypatch.setattr(email_service, "MAIL_FROM", "noreply@acme.com")
    monkeypatch.setattr(email_service.smtplib, "SMTP", FakeSMTP)

    email_service.send_invitation_email(
        "new@acme.com",
        "<script>alert(1)</script> Homes",
        "tenant",
        "https://frontend.local/invites/t/accept",
    )

    assert len(delivered) == 1
    html_part = delivered[0].get_body(preferencelist=("html",)).get_content()
    assert "<script>" not in html_part
    assert "&lt;script&gt;alert(1)&lt;/script&gt; Homes" in html_part
