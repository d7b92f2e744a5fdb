"""
Terminal alert monitor.

Mounts an alerts screen on the in-process ORM backend and the channel
layer, then prints the badge counts every time the collection changes.
With the Redis channel layer this follows writes made by any server
process; with the in-memory layer only writes from this process show up.
"""
import asyncio

from django.core.management.base import BaseCommand, CommandError

from core.live.backends import OrmBackend
from core.live.screens import AlertsScreen
from core.live.session import Session
from core.live.subscriptions import ChannelLayerTransport, SubscriptionManager
from core.models import User
from core.roles import CARE_ROLES


class Command(BaseCommand):
    help = 'Follow alerts live and print pending and critical counts.'

    def add_arguments(self, parser):
        parser.add_argument('email', help='care staff account to watch as')
        parser.add_argument('--pending-only', action='store_true', help='hold only unacknowledged alerts')
        parser.add_argument('--seconds', type=float, default=None, help='stop after this many seconds')

    def handle(self, *args, **opts):
        user = User.objects.filter(email=opts['email'], is_active=True).first()
        if user is None:
            raise CommandError(f"no active account {opts['email']!r}")
        if user.role not in CARE_ROLES:
            raise CommandError('alerts are only visible to care staff')
        try:
            asyncio.run(self._watch(Session.for_user(user), opts['pending_only'], opts['seconds']))
        except KeyboardInterrupt:
            pass

    async def _watch(self, session, pending_only, seconds):
        manager = SubscriptionManager(ChannelLayerTransport())
        screen = AlertsScreen(session, OrmBackend(session), manager, pending_only=pending_only)
        screen.listen(self._render)
        await screen.mount()
        try:
            if seconds is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(seconds)
        finally:
            await screen.unmount()
            await manager.close_all()

    def _render(self, screen):
        if screen.state.status == 'error':
            self.stderr.write(f'error: {screen.state.error}')
            return
        if screen.state.status != 'ready':
            return
        b = screen.badges
        line = f"alerts={b['total']} pending={b['unacknowledged']} critical={b['critical']}"
        style = self.style.ERROR if b['critical'] else self.style.SUCCESS
        self.stdout.write(style(line))
