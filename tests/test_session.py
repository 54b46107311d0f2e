import asyncio
import time
import pytest
from notevault.lib.crypto import VaultCrypto, DecryptionError
from notevault.lib.indexer import AttachmentIndexer
from notevault.lib.session import VaultSession
from notevault.lib.utils import Note, ValidationError

crypto = VaultCrypto()


def make_note(note_id, text, password, attachments=()):
    enc = crypto.encrypt_text(text, password)
    return Note(id=note_id, title=f'Note {note_id}', content=enc.ciphertext, is_encrypted=True,
                iv=enc.iv, salt=enc.salt, attachments=list(attachments))


def test_unlock_caches_plaintext():
    note = make_note('a', 'secret body', 'pw')

    async def scenario():
        async with VaultSession() as session:
            unlocked = await session.unlock(note, 'pw')
            assert unlocked.content == 'secret body'
            assert session.note_id == 'a'
            assert session.get('a').title == 'Note a'
            assert session.get('b') is None
            assert session.password_for('a') == 'pw'
            assert 'pw' not in repr(unlocked)

    asyncio.run(scenario())


def test_wrong_password_stays_locked():
    note = make_note('a', 'secret body', 'pw')

    async def scenario():
        session = VaultSession()
        with pytest.raises(DecryptionError, match='Invalid key'):
            await session.unlock(note, 'nope')
        assert not session.is_unlocked
        assert session._timer is None

    asyncio.run(scenario())


def test_unlock_validation_happens_first():
    plain = Note(id='p', title='t', content='hello')
    broken = Note(id='x', title='t', content='abcd', is_encrypted=True)

    async def scenario():
        session = VaultSession()
        with pytest.raises(ValidationError):
            await session.unlock(plain, 'pw')
        with pytest.raises(ValidationError):
            await session.unlock(make_note('a', 'x', 'pw'), '')
        with pytest.raises(ValidationError):
            await session.unlock(broken, 'pw')

    asyncio.run(scenario())


def test_select_note_clears_plaintext():
    a = make_note('a', 'alpha', 'pw')
    b = make_note('b', 'beta', 'pw')

    async def scenario():
        session = VaultSession()
        await session.unlock(a, 'pw')
        await session.select_note(b)
        assert session._unlocked is None
        assert session.get('a') is None and session.get('b') is None
        assert session.selected_id == 'b'
        assert session._timer is None

    asyncio.run(scenario())


def test_select_same_note_still_locks():
    a = make_note('a', 'alpha', 'pw')

    async def scenario():
        session = VaultSession()
        await session.unlock(a, 'pw')
        await session.select_note(a)
        assert not session.is_unlocked

    asyncio.run(scenario())


def test_auto_lock_after_timeout():
    note = make_note('a', 'alpha', 'pw')

    async def scenario():
        session = VaultSession(timeout=0.05)
        await session.unlock(note, 'pw')
        assert session.is_unlocked
        await asyncio.sleep(0.2)
        # the timer fired on its own, no read needed
        assert session._unlocked is None
        assert not session.is_unlocked

    asyncio.run(scenario())


def test_unlock_resets_timer():
    note = make_note('a', 'alpha', 'pw')

    async def scenario():
        session = VaultSession(timeout=0.5)
        await session.unlock(note, 'pw')
        await asyncio.sleep(0.3)
        await session.unlock(note, 'pw')
        await asyncio.sleep(0.3)
        assert session.is_unlocked
        await asyncio.sleep(0.4)
        assert session._unlocked is None

    asyncio.run(scenario())


def test_reads_do_not_extend_window():
    note = make_note('a', 'alpha', 'pw')

    async def scenario():
        session = VaultSession(timeout=0.3)
        await session.unlock(note, 'pw')
        for _ in range(4):
            await asyncio.sleep(0.1)
            session.get('a')
        assert not session.is_unlocked

    asyncio.run(scenario())


def test_lock_cancels_timer():
    note = make_note('a', 'alpha', 'pw')

    async def scenario():
        session = VaultSession(timeout=30)
        await session.unlock(note, 'pw')
        timer = session._timer
        session.lock()
        assert timer.cancelled()
        assert not session.is_unlocked

    asyncio.run(scenario())


def test_unlock_triggers_indexing(memory_store):
    packed = crypto.encrypt_file(b'attached notes', 'pw')
    memory_store.objects['u/1_notes.txt'] = packed
    note = make_note('a', 'alpha', 'pw', ['u/1_notes.txt'])
    indexer = AttachmentIndexer(memory_store)

    async def scenario():
        async with VaultSession(indexer=indexer) as session:
            await session.unlock(note, 'pw')
            await session.wait_indexing()
        assert indexer.cache.text('u/1_notes.txt') == 'attached notes'

    asyncio.run(scenario())


def test_selecting_plain_note_indexes_without_password(memory_store):
    memory_store.objects['u/1_readme.md'] = b'# plain'
    note = Note(id='p', title='plain', content='body', attachments=['u/1_readme.md'])
    indexer = AttachmentIndexer(memory_store)

    async def scenario():
        session = VaultSession(indexer=indexer)
        await session.select_note(note)
        await session.wait_indexing()
        await session.close()

    asyncio.run(scenario())
    assert indexer.cache.text('u/1_readme.md') == '# plain'


def test_close_tears_down():
    note = make_note('a', 'alpha', 'pw')

    async def scenario():
        session = VaultSession(timeout=30)
        await session.unlock(note, 'pw')
        timer = session._timer
        await session.close()
        assert timer.cancelled()
        assert session._unlocked is None

    asyncio.run(scenario())


def test_deadline_follows_monotonic_clock(monkeypatch):
    note = make_note('a', 'alpha', 'pw')

    async def scenario():
        session = VaultSession(timeout=60)
        before = time.monotonic()
        unlocked = await session.unlock(note, 'pw')
        assert before + 60 <= unlocked.expires_at <= time.monotonic() + 60
        # wall clock jumps forward an hour
        real_time = time.time
        with monkeypatch.context() as m:
            m.setattr(time, 'time', lambda: real_time() + 3600)
            assert session.is_unlocked
        unlocked.expires_at = time.monotonic() - 0.01
        assert session.get('a') is None
        assert session._timer is None

    asyncio.run(scenario())
