import pytest
from sqlalchemy import select

from salesdesk.auth.password import PasswordService
from salesdesk.core.config import Settings
from salesdesk.core.errors import AuthError, ErrorCode
from salesdesk.models.audit import ActivityAction, ActivityLog
from salesdesk.models.user import UserRole, UserStatus
from salesdesk.schemas.user import ProfileUpdate, UserCreate, UserUpdate
from conftest import DEFAULT_PASSWORD, START, create_user

NEW_PASSWORD = "N3w-Secure#Pw"


async def recorded_actions(ctx):
    await ctx.recorder.drain()
    async with ctx.database.session() as db:
        result = await db.execute(select(ActivityLog).order_by(ActivityLog.id))
        return [entry.action for entry in result.scalars().all()]


async def test_login_opens_session(ctx):
    user = await create_user(ctx)

    response = await ctx.auth.login("ADV001", DEFAULT_PASSWORD, "10.0.0.1", "pytest")

    assert response.user.id == user.id
    assert response.user.code == "ADV001"
    assert response.token_type == "Bearer"
    session = await ctx.sessions.find_active_by_token(response.session_id, user.id)
    assert session.refresh_token == response.refresh_token
    assert session.ip_address == "10.0.0.1"

    reloaded = await ctx.users.get_by_id(user.id)
    assert reloaded.last_login == START
    # Entries are written by concurrent tasks
    assert sorted(await recorded_actions(ctx)) == sorted([ActivityAction.LOGIN_SUCCESS, ActivityAction.LOGIN])


@pytest.mark.parametrize("identifier,password,code", [
    ("NOBODY", DEFAULT_PASSWORD, ErrorCode.USER_NOT_FOUND),
    ("ADV001", "Wrong-Passw0rd", ErrorCode.INVALID_PASSWORD),
    ("ADV002", DEFAULT_PASSWORD, ErrorCode.USER_INACTIVE),
])
async def test_login_failures(ctx, identifier, password, code):
    await create_user(ctx, code="ADV001")
    await create_user(ctx, code="ADV002", status=UserStatus.INACTIVE)

    with pytest.raises(AuthError) as exc:
        await ctx.auth.login(identifier, password)

    assert exc.value.code == code
    assert exc.value.status_code == 401
    assert await recorded_actions(ctx) == [ActivityAction.LOGIN_FAILED]
    assert await ctx.sessions.list_active(1) == []


async def test_failed_login_entry_has_no_secret(ctx):
    await create_user(ctx)
    with pytest.raises(AuthError):
        await ctx.auth.login("ADV001", "Wrong-Passw0rd")
    await ctx.recorder.drain()

    async with ctx.database.session() as db:
        entry = (await db.execute(select(ActivityLog))).scalar_one()
    assert entry.user_id is None
    assert entry.new_values == {"code": "ADV001", "reason": "INVALID_PASSWORD"}


async def test_login_upgrades_outdated_hash(ctx):
    weak = PasswordService(Settings(password_time_cost=1, password_memory_cost=512, password_parallelism=1))
    user = await ctx.users.create(
        code="ADV001",
        name="Ana",
        email="ana@example.com",
        password_hash=weak.hash_sync(DEFAULT_PASSWORD),
        role=UserRole.AGENT,
    )

    await ctx.auth.login("ADV001", DEFAULT_PASSWORD)

    reloaded = await ctx.users.get_by_id(user.id)
    assert not ctx.passwords.needs_rehash(reloaded.password_hash)
    assert ctx.passwords.verify_sync(DEFAULT_PASSWORD, reloaded.password_hash)


async def test_refresh_rotates_refresh_token(ctx):
    user = await create_user(ctx)
    login = await ctx.auth.login("ADV001", DEFAULT_PASSWORD)

    renewed = await ctx.auth.refresh_tokens(login.refresh_token, user, login.session_id)

    assert renewed.session_id == login.session_id
    assert renewed.refresh_token != login.refresh_token

    with pytest.raises(AuthError) as exc:
        await ctx.auth.refresh_tokens(login.refresh_token, user, login.session_id)
    assert exc.value.code == ErrorCode.INVALID_REFRESH_TOKEN

    again = await ctx.auth.refresh_tokens(renewed.refresh_token, user, renewed.session_id)
    assert again.session_id == login.session_id


async def test_refresh_after_logout_is_rejected(ctx):
    user = await create_user(ctx)
    login = await ctx.auth.login("ADV001", DEFAULT_PASSWORD)
    await ctx.auth.logout(login.session_id, user.id)

    with pytest.raises(AuthError) as exc:
        await ctx.auth.refresh_tokens(login.refresh_token, user, login.session_id)
    assert exc.value.code == ErrorCode.INVALID_REFRESH_TOKEN


async def test_refresh_of_expired_session(ctx, clock):
    user = await create_user(ctx)
    login = await ctx.auth.login("ADV001", DEFAULT_PASSWORD)
    clock.advance(hours=25)

    with pytest.raises(AuthError) as exc:
        await ctx.auth.refresh_tokens(login.refresh_token, user, login.session_id)
    assert exc.value.code == ErrorCode.INVALID_REFRESH_TOKEN
    assert await ctx.sessions.list_active(user.id) == []


async def test_logout_twice(ctx):
    user = await create_user(ctx)
    login = await ctx.auth.login("ADV001", DEFAULT_PASSWORD)

    await ctx.auth.logout(login.session_id, user.id)
    with pytest.raises(AuthError) as exc:
        await ctx.auth.logout(login.session_id, user.id)
    assert exc.value.code == ErrorCode.SESSION_NOT_FOUND
    assert exc.value.status_code == 404


async def test_logout_all(ctx):
    user = await create_user(ctx)
    for _ in range(3):
        await ctx.auth.login("ADV001", DEFAULT_PASSWORD)

    result = await ctx.auth.logout_all(user.id)

    assert result.closed_sessions == 3
    assert (await ctx.auth.logout_all(user.id)).closed_sessions == 0
    assert ActivityAction.LOGOUT_ALL in await recorded_actions(ctx)


async def test_list_sessions_flags_current(ctx, clock):
    user = await create_user(ctx)
    first = await ctx.auth.login("ADV001", DEFAULT_PASSWORD, user_agent="Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0")
    clock.advance(minutes=1)
    second = await ctx.auth.login("ADV001", DEFAULT_PASSWORD)

    sessions = await ctx.auth.list_sessions(user.id, first.session_id)

    assert len(sessions) == 2
    assert [s.current for s in sessions] == [False, True]
    assert sessions[1].browser == "Firefox"
    assert sessions[1].os == "Linux"
    assert sessions[0].browser == "Unknown"
    assert second.session_id != first.session_id


async def test_validate_session(ctx, clock):
    await create_user(ctx)
    login = await ctx.auth.login("ADV001", DEFAULT_PASSWORD)
    clock.advance(minutes=30)

    result = await ctx.auth.validate_session(login.session_id)

    assert result.user.code == "ADV001"
    assert result.session.last_activity == clock.now()

    with pytest.raises(AuthError) as exc:
        await ctx.auth.validate_session("unknown")
    assert exc.value.code == ErrorCode.INVALID_SESSION


async def test_change_password_revokes_every_session(ctx):
    user = await create_user(ctx)
    await ctx.auth.login("ADV001", DEFAULT_PASSWORD)
    await ctx.auth.login("ADV001", DEFAULT_PASSWORD)

    revoked = await ctx.auth.change_password(user.id, DEFAULT_PASSWORD, NEW_PASSWORD)

    assert revoked == 2
    assert await ctx.sessions.list_active(user.id) == []
    assert (await ctx.credentials.verify("ADV001", NEW_PASSWORD)).ok
    assert not (await ctx.credentials.verify("ADV001", DEFAULT_PASSWORD)).ok


@pytest.mark.parametrize("current,new,code", [
    ("Wrong-Passw0rd", NEW_PASSWORD, ErrorCode.INVALID_CURRENT_PASSWORD),
    (DEFAULT_PASSWORD, "abc", ErrorCode.WEAK_PASSWORD),
    (DEFAULT_PASSWORD, "password123", ErrorCode.WEAK_PASSWORD),
    (DEFAULT_PASSWORD, DEFAULT_PASSWORD, ErrorCode.PASSWORD_REUSED),
])
async def test_change_password_rejections(ctx, current, new, code):
    user = await create_user(ctx)
    await ctx.auth.login("ADV001", DEFAULT_PASSWORD)

    with pytest.raises(AuthError) as exc:
        await ctx.auth.change_password(user.id, current, new)

    assert exc.value.code == code
    assert exc.value.status_code == 400
    assert len(await ctx.sessions.list_active(user.id)) == 1


async def test_check_user_status(ctx):
    user = await create_user(ctx, role=UserRole.ADMIN)

    snapshot = await ctx.auth.check_user_status(user.id)
    assert snapshot.role == UserRole.ADMIN
    assert snapshot.status == UserStatus.ACTIVE

    await ctx.users.set_status(user.id, UserStatus.SUSPENDED)
    with pytest.raises(AuthError) as exc:
        await ctx.auth.check_user_status(user.id)
    assert exc.value.code == ErrorCode.USER_NOT_FOUND
    assert exc.value.status_code == 404


async def test_cleanup_expired_sessions(ctx, clock):
    admin = await create_user(ctx, role=UserRole.ADMIN)
    await ctx.auth.login("ADV001", DEFAULT_PASSWORD)
    await ctx.auth.login("ADV001", DEFAULT_PASSWORD)
    clock.advance(days=1)

    result = await ctx.auth.cleanup_expired_sessions(admin.id)

    assert result.cleaned_sessions == 2
    assert ActivityAction.SESSION_CLEANUP in await recorded_actions(ctx)


async def test_create_user_with_temporary_password(ctx):
    created = await ctx.directory.create_user(
        UserCreate(code="adv010", name="Luis", email="Luis@Example.com", role=UserRole.AGENT)
    )

    assert created.code == "ADV010"
    assert created.email == "luis@example.com"
    assert created.temporary_password
    assert (await ctx.credentials.verify("ADV010", created.temporary_password)).ok


async def test_create_user_duplicate(ctx):
    await create_user(ctx, code="ADV010")
    with pytest.raises(AuthError) as exc:
        await ctx.directory.create_user(
            UserCreate(code="ADV010", name="Luis", email="other@example.com", password=NEW_PASSWORD)
        )
    assert exc.value.code == ErrorCode.DUPLICATE_ENTRY
    assert exc.value.status_code == 409


async def test_suspending_user_closes_sessions(ctx):
    user = await create_user(ctx)
    await ctx.auth.login("ADV001", DEFAULT_PASSWORD)

    updated = await ctx.directory.change_status(user.id, UserStatus.SUSPENDED, reason="audit")

    assert updated.status == UserStatus.SUSPENDED
    assert await ctx.sessions.list_active(user.id) == []
    assert ActivityAction.USER_STATUS_CHANGED in await recorded_actions(ctx)


async def test_list_users_filters(ctx):
    await create_user(ctx, code="ADV001", name="Ana Torres")
    await create_user(ctx, code="ADV002", name="Luis Gomez")
    await create_user(ctx, code="SUP001", name="Marta Ruiz", role=UserRole.SUPERVISOR)

    page = await ctx.directory.list_users(role=UserRole.AGENT)
    assert page.total == 2

    page = await ctx.directory.list_users(search="gomez")
    assert [u.code for u in page.items] == ["ADV002"]

    page = await ctx.directory.list_users(page=2, per_page=2)
    assert page.total == 3
    assert len(page.items) == 1


async def test_admin_cannot_deactivate_self(ctx):
    admin = await create_user(ctx, code="ADM001", role=UserRole.ADMIN)
    await ctx.auth.login("ADM001", DEFAULT_PASSWORD)

    with pytest.raises(AuthError) as exc:
        await ctx.directory.change_status(admin.id, UserStatus.INACTIVE, actor_id=admin.id)

    assert exc.value.code == ErrorCode.CANNOT_DEACTIVATE_SELF
    assert exc.value.status_code == 400
    assert (await ctx.users.get_by_id(admin.id)).status == UserStatus.ACTIVE
    assert len(await ctx.sessions.list_active(admin.id)) == 1


async def test_admin_may_reactivate_self(ctx):
    admin = await create_user(ctx, code="ADM001", role=UserRole.ADMIN)

    updated = await ctx.directory.change_status(admin.id, UserStatus.ACTIVE, actor_id=admin.id)

    assert updated.status == UserStatus.ACTIVE


async def test_update_user_records_changed_fields(ctx):
    admin = await create_user(ctx, code="ADM001", role=UserRole.ADMIN)
    user = await create_user(ctx, code="ADV001", name="Ana Torres")

    updated = await ctx.directory.update_user(
        user.id,
        UserUpdate(code="adv101", name="Ana Torres", role=UserRole.SUPERVISOR, phone="555-0101"),
        actor_id=admin.id,
    )

    assert updated.code == "ADV101"
    assert updated.role == UserRole.SUPERVISOR
    assert updated.phone == "555-0101"

    await ctx.recorder.drain()
    async with ctx.database.session() as db:
        entry = (
            await db.execute(select(ActivityLog).where(ActivityLog.action == ActivityAction.USER_UPDATED))
        ).scalar_one()
    assert entry.user_id == admin.id
    assert entry.entity_id == str(user.id)
    # Unchanged fields are not recorded
    assert entry.old_values == {"code": "ADV001", "role": "agent", "phone": None}
    assert entry.new_values == {"code": "ADV101", "role": "supervisor", "phone": "555-0101"}


async def test_update_user_rejects_taken_email(ctx):
    await create_user(ctx, code="ADV001")
    other = await create_user(ctx, code="ADV002")

    with pytest.raises(AuthError) as exc:
        await ctx.directory.update_user(other.id, UserUpdate(email="ADV001@example.com"))

    assert exc.value.code == ErrorCode.DUPLICATE_ENTRY
    assert exc.value.status_code == 409


async def test_update_user_keeps_own_code(ctx):
    user = await create_user(ctx, code="ADV001")

    updated = await ctx.directory.update_user(user.id, UserUpdate(code="ADV001", name="Ana Ruiz"))

    assert updated.name == "Ana Ruiz"


async def test_update_missing_user(ctx):
    with pytest.raises(AuthError) as exc:
        await ctx.directory.update_user(999, ProfileUpdate(name="Nobody"))
    assert exc.value.code == ErrorCode.NOT_FOUND
