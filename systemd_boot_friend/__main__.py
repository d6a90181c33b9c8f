from systemd_boot_friend.main import run

run()
