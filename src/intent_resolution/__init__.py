"""语音指令分类与意图解析。"""
