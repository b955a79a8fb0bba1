import re
from typing import Optional
from urllib.parse import urlparse

TITLE_PATTERNS = [
    # Navigation verbs and site sections
    re.compile(r'^(查看|点击|了解|阅读|更多|详情|详细|进入|返回|下载|登录|注册|订阅)'),
    re.compile(r'^(首页|关于|联系|帮助|搜索|设置|个人中心)'),
    re.compile(r'^(view more|read more|click here|learn more)', re.IGNORECASE),
    re.compile(r'^(home|about( us)?|contact( us)?|log ?in|sign ?(in|up)|register|subscribe)\s*[>»→]?\s*$', re.IGNORECASE),
    re.compile(r'(详情|更多|点击这里)\s*[>»→]?\s*$'),
    re.compile(r'\b(click here|read more|view more|more)\s*[>»→]?\s*$', re.IGNORECASE),
    # Bare digits and punctuation
    re.compile(r'^[\s\d\-_./]+$'),
    # Wrapped in bracket pairs
    re.compile(r'^[<>《》【】\[\]「」『』]+.*[<>《》【】\[\]「」『』]+$'),
    # Entity left undecoded
    re.compile(r'&(#\d+|[a-z]+);', re.IGNORECASE),
    # Legal boilerplate
    re.compile(r'(用户协议|服务协议|隐私政策|隐私声明|法律声明|免责声明|版权声明|使用条款)'),
    re.compile(r'(privacy policy|terms of (use|service)|user agreement|disclaimer|cookie policy)', re.IGNORECASE),
    # Registration numbers
    re.compile(r'(ICP备|网安备|京ICP|沪ICP|粤ICP|浙ICP|苏ICP|鲁ICP)', re.IGNORECASE),
    re.compile(r'^[京沪粤浙苏鲁川渝闽湘鄂皖赣]?(公网安备|ICP)'),
    # Ads and promotion
    re.compile(r'^(广告|推广|赞助|合作伙伴|友情链接)'),
    # Corporate navigation
    re.compile(r'^(加入我们|联系我们|关于我们|公司介绍|招聘信息|诚聘英才)'),
    re.compile(r'^(意见反馈|投诉建议|客服中心|帮助中心)'),
]

URL_PATTERNS = [
    re.compile(r'/(usercenter|user[-_]?center|member|account|login|register|signup|signin)(/|$|\?)', re.IGNORECASE),
    re.compile(r'/(agreement|privacy|terms|policy|legal|disclaimer)\b', re.IGNORECASE),
    re.compile(r'/(ad|ads|advert|banner|sponsor|promotion)/', re.IGNORECASE),
    re.compile(r'/(download|upload|attachment|file)/', re.IGNORECASE),
    re.compile(r'/(about|contact|help|faq|feedback|sitemap)\b', re.IGNORECASE),
]

BLOCKED_HOSTS = [
    'beian.miit.gov.cn',
    'beian.gov.cn',
    'google.com',
    'bing.com',
    'sogou.com',
    'so.com',
    'cnzz.com',
    'umeng.com',
]

BLOCKED_URL_PATTERNS = [
    re.compile(r'^https?://(www\.)?baidu\.com/s\b', re.IGNORECASE),
    re.compile(r'^https?://analytics\.', re.IGNORECASE),
]


def host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith('.' + domain)


class NoiseFilter:
    """Rejects candidates that are navigation, legal, ad or off-site links."""

    def reason(self, title: str, url: str, base_host: str) -> Optional[str]:
        """Return which rule family rejects the candidate, or None if it passes."""
        for pattern in TITLE_PATTERNS:
            if pattern.search(title):
                return f"title matches {pattern.pattern}"

        try:
            parsed = urlparse(url)
            host = (parsed.hostname or '').lower()
        except ValueError:
            return "unparseable url"
        base_host = (base_host or '').lower()

        if any(host_matches(host, blocked) for blocked in BLOCKED_HOSTS):
            return f"blocked host {host}"
        for pattern in BLOCKED_URL_PATTERNS:
            if pattern.search(url):
                return f"blocked url {pattern.pattern}"
        if not host_matches(host, base_host):
            return f"cross-site host {host}"

        path = parsed.path + ('?' + parsed.query if parsed.query else '')
        for pattern in URL_PATTERNS:
            if pattern.search(path):
                return f"url matches {pattern.pattern}"

        return None

    def is_noise(self, title: str, url: str, base_host: str) -> bool:
        return self.reason(title, url, base_host) is not None
