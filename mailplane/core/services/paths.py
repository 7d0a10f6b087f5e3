"""Host paths the provisioning sessions read or write."""

ROUNDCUBE_CONFIG = "/etc/roundcube/config.inc.php"

NGINX_SNIPPET = "/etc/nginx/snippets/roundcube-webmail.conf"
NGINX_SITE = "/etc/nginx/sites-available/roundcube-webmail"
NGINX_SITE_ENABLED = "/etc/nginx/sites-enabled/roundcube-webmail"
NGINX_LEGACY_SITE_ENABLED = "/etc/nginx/sites-enabled/roundcube"

APACHE_CONF_NAME = "roundcube-webmail"
APACHE_CONF = "/etc/apache2/conf-available/roundcube-webmail.conf"
APACHE_CONF_ENABLED = "/etc/apache2/conf-enabled/roundcube-webmail.conf"

UNBOUND_FORWARD_CONF = "/etc/unbound/unbound.conf.d/mailplane-forward.conf"
RESOLVED_DROPIN = "/etc/systemd/resolved.conf.d/mailplane-unbound.conf"
RESOLV_CONF = "/etc/resolv.conf"

LOCAL_RESOLVER = "127.0.0.1"
