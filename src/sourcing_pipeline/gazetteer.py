"""Gazetteer Module

Fixed lookup tables of Chinese provinces and their prefecture-level cities,
plus pure helper functions over them:

  - find_location_in_name: recover a location hint from a company name
  - dedupe_location_tokens: collapse "Guangdong, China, Guangdong, China"
  - split_location: pick city / province out of a free-text location
  - location_matches: alias-aware matching used by the filter engine

None of these functions touch pipeline state, so they are unit-testable on
their own.
"""

import re
from typing import Dict, Iterable, List, Optional, Tuple


# Province (or municipality) -> cities. A city name may appear under more
# than one province (Suzhou, Taizhou, Fuzhou, Yulin).
PROVINCE_CITIES: Dict[str, Tuple[str, ...]] = {
    "Guangdong": (
        "Guangzhou", "Shenzhen", "Dongguan", "Foshan", "Zhongshan", "Jiangmen",
        "Zhuhai", "Huizhou", "Shantou", "Qingyuan", "Shaoguan", "Zhaoqing",
        "Meizhou", "Heyuan", "Yangjiang", "Maoming", "Jieyang", "Chaozhou",
        "Yunfu", "Zhanjiang", "Shanwei",
    ),
    "Jiangsu": (
        "Suzhou", "Nanjing", "Wuxi", "Changzhou", "Xuzhou", "Nantong",
        "Lianyungang", "Huai'an", "Yancheng", "Yangzhou", "Zhenjiang",
        "Taizhou", "Suqian",
    ),
    "Zhejiang": (
        "Hangzhou", "Ningbo", "Wenzhou", "Jiaxing", "Huzhou", "Shaoxing",
        "Jinhua", "Quzhou", "Zhoushan", "Taizhou", "Lishui", "Yiwu",
    ),
    "Anhui": (
        "Hefei", "Wuhu", "Bengbu", "Huainan", "Ma'anshan", "Huaibei", "Tongling",
        "Anqing", "Huangshan", "Chuzhou", "Fuyang", "Suzhou", "Lu'an", "Bozhou",
        "Chizhou", "Xuancheng",
    ),
    "Fujian": (
        "Fuzhou", "Xiamen", "Putian", "Sanming", "Quanzhou", "Zhangzhou",
        "Nanping", "Longyan", "Ningde",
    ),
    "Jiangxi": (
        "Nanchang", "Jingdezhen", "Pingxiang", "Jiujiang", "Xinyu", "Yingtan",
        "Ganzhou", "Ji'an", "Yichun", "Fuzhou", "Shangrao",
    ),
    "Shandong": (
        "Jinan", "Qingdao", "Zibo", "Zaozhuang", "Dongying", "Yantai", "Weifang",
        "Jining", "Tai'an", "Weihai", "Rizhao", "Linyi", "Dezhou", "Liaocheng",
        "Binzhou", "Heze",
    ),
    "Henan": (
        "Zhengzhou", "Kaifeng", "Luoyang", "Pingdingshan", "Anyang", "Hebi",
        "Xinxiang", "Jiaozuo", "Puyang", "Xuchang", "Luohe", "Sanmenxia",
        "Nanyang", "Shangqiu", "Xinyang", "Zhoukou", "Zhumadian",
    ),
    "Hubei": (
        "Wuhan", "Huangshi", "Shiyan", "Yichang", "Xiangyang", "Ezhou", "Jingmen",
        "Xiaogan", "Jingzhou", "Huanggang", "Xianning", "Suizhou",
    ),
    "Hunan": (
        "Changsha", "Zhuzhou", "Xiangtan", "Hengyang", "Shaoyang", "Yueyang",
        "Changde", "Zhangjiajie", "Yiyang", "Chenzhou", "Yongzhou", "Huaihua",
        "Loudi",
    ),
    "Guangxi": (
        "Nanning", "Liuzhou", "Guilin", "Wuzhou", "Beihai", "Fangchenggang",
        "Qinzhou", "Guigang", "Yulin", "Baise", "Hezhou", "Hechi", "Laibin",
        "Chongzuo",
    ),
    "Hainan": ("Haikou", "Sanya"),
    "Sichuan": (
        "Chengdu", "Zigong", "Panzhihua", "Luzhou", "Deyang", "Mianyang",
        "Guangyuan", "Suining", "Neijiang", "Leshan", "Nanchong", "Meishan",
        "Yibin", "Guang'an", "Dazhou", "Ya'an", "Bazhong", "Ziyang",
    ),
    "Guizhou": ("Guiyang", "Liupanshui", "Zunyi", "Anshun"),
    "Yunnan": (
        "Kunming", "Qujing", "Yuxi", "Baoshan", "Zhaotong", "Lijiang", "Puer",
        "Lincang",
    ),
    "Tibet": ("Lhasa",),
    "Shaanxi": (
        "Xi'an", "Tongchuan", "Baoji", "Xianyang", "Weinan", "Yan'an", "Hanzhong",
        "Yulin", "Ankang", "Shangluo",
    ),
    "Gansu": (
        "Lanzhou", "Jiayuguan", "Jinchang", "Baiyin", "Tianshui", "Wuwei",
        "Zhangye", "Pingliang", "Jiuquan", "Qingyang", "Dingxi", "Longnan",
    ),
    "Qinghai": ("Xining",),
    "Ningxia": ("Yinchuan",),
    "Xinjiang": ("Urumqi", "Karamay", "Turpan", "Hami"),
    "Hebei": ("Shijiazhuang", "Tangshan", "Baoding", "Langfang", "Cangzhou", "Handan"),
    "Shanxi": ("Taiyuan", "Datong"),
    "Liaoning": ("Shenyang", "Dalian", "Anshan"),
    "Jilin": ("Changchun",),
    "Heilongjiang": ("Harbin", "Daqing"),
    "Inner Mongolia": ("Hohhot", "Baotou"),
    # Municipalities act as both city and province.
    "Beijing": ("Beijing",),
    "Shanghai": ("Shanghai",),
    "Tianjin": ("Tianjin",),
    "Chongqing": ("Chongqing",),
}

PROVINCES: Tuple[str, ...] = tuple(PROVINCE_CITIES)

# First province listed wins for cities that exist in several provinces.
CITY_TO_PROVINCE: Dict[str, str] = {}
for _province, _cities in PROVINCE_CITIES.items():
    for _city in _cities:
        CITY_TO_PROVINCE.setdefault(_city, _province)

CITIES: Tuple[str, ...] = tuple(CITY_TO_PROVINCE)

# Suffixes a location token may carry and still count as the bare name
# ("Ningbo City", "Zhejiang Province"). District suffixes are not stripped.
LOCATION_SUFFIXES = ("city", "province", "shi", "sheng")

# A place name followed by one of these is a street, not the place.
STREET_WORDS = ("road", "rd", "street", "st", "avenue", "ave", "lu", "jie")

_CANONICAL_BY_LOWER: Dict[str, str] = {
    name.lower(): name for name in list(PROVINCES) + list(CITIES)
}


def _alternation(names: Iterable[str]) -> str:
    # Longest first so "Inner Mongolia" beats shorter overlaps.
    ordered = sorted(set(names), key=len, reverse=True)
    return "|".join(re.escape(name) for name in ordered)


_CITY_AT_START_RE = re.compile(rf"^\s*({_alternation(CITIES)})\b", re.IGNORECASE)
_PROVINCE_ANYWHERE_RE = re.compile(rf"\b({_alternation(PROVINCES)})\b", re.IGNORECASE)


def canonical_name(name: str) -> Optional[str]:
    """Return the gazetteer spelling of a city/province, or None if unknown."""
    if not name:
        return None
    token = name.strip().lower()
    for suffix in LOCATION_SUFFIXES:
        if token.endswith(" " + suffix):
            token = token[: -len(suffix) - 1].strip()
            break
    return _CANONICAL_BY_LOWER.get(token)


def is_province(name: str) -> bool:
    canonical = canonical_name(name)
    return canonical is not None and canonical in PROVINCE_CITIES


def is_city(name: str) -> bool:
    canonical = canonical_name(name)
    return canonical is not None and canonical in CITY_TO_PROVINCE


def province_for_city(city: str) -> Optional[str]:
    canonical = canonical_name(city)
    if canonical is None:
        return None
    return CITY_TO_PROVINCE.get(canonical)


def cities_in_province(province: str) -> Tuple[str, ...]:
    canonical = canonical_name(province)
    if canonical is None:
        return ()
    return PROVINCE_CITIES.get(canonical, ())


def find_location_in_name(company_name: str) -> Optional[str]:
    """
    Recover a location hint from a company name.

    Chinese company names usually lead with their city ("Shenzhen Bright LED
    Co., Ltd."); failing that, a province may appear anywhere in the name.
    """
    if not company_name:
        return None
    match = _CITY_AT_START_RE.search(company_name)
    if match:
        return _CANONICAL_BY_LOWER[match.group(1).lower()]
    match = _PROVINCE_ANYWHERE_RE.search(company_name)
    if match:
        return _CANONICAL_BY_LOWER[match.group(1).lower()]
    return None


def dedupe_location_tokens(location: str) -> Optional[str]:
    """
    Collapse duplicate comma-separated tokens, case-insensitively, keeping
    the first-seen spelling and order. Returns None for an empty result.
    """
    if not location:
        return None
    seen = set()
    unique_parts: List[str] = []
    for part in location.split(","):
        part = part.strip()
        if not part:
            continue
        key = part.lower()
        if key in seen:
            continue
        seen.add(key)
        unique_parts.append(part)
    return ", ".join(unique_parts) or None


def split_location(location: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Pick (city, province) out of a free-text location string.

    Known gazetteer tokens are preferred; a known city also implies its
    province. Unknown strings fall back to position: first token is the
    city, second the province.
    """
    if not location:
        return None, None
    separator = "," if "," in location else None
    tokens = [t.strip() for t in location.split(separator) if t.strip()]
    if not tokens:
        return None, None

    city: Optional[str] = None
    province: Optional[str] = None
    for token in tokens:
        if city is None and is_city(token) and not is_province(token):
            city = canonical_name(token)
        elif province is None and is_province(token):
            province = canonical_name(token)

    if city is not None and province is None:
        province = province_for_city(city)
    if city is None and province is not None and PROVINCE_CITIES[province] == (province,):
        city = province
    if city is None and province is None:
        city = tokens[0]
        province = tokens[1] if len(tokens) > 1 else None
    return city, province


def _token_pattern(name: str) -> re.Pattern:
    streets = "|".join(STREET_WORDS)
    return re.compile(
        rf"\b{re.escape(name)}\b(?![ \t]+(?:{streets})\b)",
        re.IGNORECASE,
    )


def location_matches(address: str, location: str) -> bool:
    """
    Decide whether ``address`` lies in ``location``.

    A name matches at word boundaries anywhere in the address unless a street
    word follows it, so "Ningbo" matches "Ningbo,", "Ningbo City",
    ", Ningbo" and "Yinzhou, Ningbo Zhejiang" but not "Ningbo Road". A
    province also matches any address that names one of its cities.
    """
    if not address or not location or not location.strip():
        return False
    wanted = location.strip()
    candidates = [wanted]
    canonical = canonical_name(wanted)
    if canonical is not None and canonical in PROVINCE_CITIES:
        candidates.extend(c for c in PROVINCE_CITIES[canonical] if c != canonical)
    return any(_token_pattern(name).search(address) for name in candidates)
